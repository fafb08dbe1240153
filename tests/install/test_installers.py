import io
import logging
import os
import tarfile
from pathlib import Path

import pytest
import requests

from dbcp.errors import CommandError, InstallError
from dbcp.install import patroni as patroni_mod
from dbcp.install import postgresql as pg_mod
from dbcp.install.etcd import EtcdInstaller, release_url
from dbcp.install.patroni import PatroniInstaller
from dbcp.install.postgresql import PostgreSQLInstaller, apt_commands, dnf_commands
from dbcp.install.registry import build_installers
from dbcp.system.os_info import OSInfo

logger = logging.getLogger("dbcp-test")
DEBIAN = OSInfo(id="ubuntu", version_id="22.04", family="debian")
ROCKY = OSInfo(id="rocky", version_id="9.3", family="rhel")


# ---------------------------------------------------------------------
# etcd
# ---------------------------------------------------------------------
def etcd_tarball(version: str) -> bytes:
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz") as tar:
        for name in ("etcd", "etcdctl", "README.md"):
            data = f"#!/bin/sh\necho {name} {version}\n".encode()
            info = tarfile.TarInfo(f"etcd-v{version}-linux-amd64/{name}")
            info.size = len(data)
            info.mode = 0o644
            tar.addfile(info, io.BytesIO(data))
    return buf.getvalue()


class FakeResponse:
    def __init__(self, body: bytes = b"", status: int = 200):
        self.body = body
        self.status_code = status

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"HTTP {self.status_code}")

    def iter_content(self, chunk_size=1):
        for i in range(0, len(self.body), chunk_size):
            yield self.body[i:i + chunk_size]


class FakeSession:
    def __init__(self, response: FakeResponse):
        self.response = response
        self.calls = []

    def get(self, url, **kwargs):
        self.calls.append((url, kwargs))
        return self.response


def test_release_url():
    assert release_url("https://example.test/etcd/", "3.5.12") == (
        "https://example.test/etcd/v3.5.12/etcd-v3.5.12-linux-amd64.tar.gz"
    )


def test_etcd_installer_moves_binaries(agent_config):
    session = FakeSession(FakeResponse(etcd_tarball("3.5.12")))
    EtcdInstaller(agent_config, logger=logger, session=session).install()

    url, kwargs = session.calls[0]
    assert url.endswith("/v3.5.12/etcd-v3.5.12-linux-amd64.tar.gz")
    assert kwargs["stream"] is True
    assert kwargs["timeout"] == agent_config.timeouts.download

    bin_dir = Path(agent_config.node.etcd.bin_path)
    for name in ("etcd", "etcdctl"):
        assert (bin_dir / name).is_file()
        assert os.stat(bin_dir / name).st_mode & 0o777 == 0o755
    assert not (bin_dir / "README.md").exists()


def test_etcd_download_failure_is_install_error(agent_config):
    session = FakeSession(FakeResponse(status=404))
    with pytest.raises(InstallError, match="failed to download etcd"):
        EtcdInstaller(agent_config, logger=logger, session=session).install()


# ---------------------------------------------------------------------
# PostgreSQL
# ---------------------------------------------------------------------
def test_apt_commands_pin_version():
    cmds = apt_commands("16", "http://apt.postgresql.org/pub/repos/apt")
    assert "apt-get install -y postgresql-16" in cmds
    assert any("pgdg main" in c for c in cmds)


def test_dnf_commands_use_major_release():
    cmds = dnf_commands("16", "9.3", "https://download.postgresql.org/pub/repos/yum", "/tmp/x")
    assert "EL-9-x86_64" in cmds[0]
    assert cmds[-1] == "dnf install -y postgresql16-server postgresql16"


def test_postgresql_commands_by_family(agent_config):
    assert PostgreSQLInstaller(agent_config, DEBIAN, logger=logger).commands()[0] == "apt-get update"
    assert PostgreSQLInstaller(agent_config, ROCKY, logger=logger).commands()[1].startswith("dnf install")
    with pytest.raises(InstallError):
        PostgreSQLInstaller(agent_config, OSInfo(id="arch", family="arch"), logger=logger).commands()


def test_postgresql_install_step_failure(agent_config, monkeypatch):
    def fake_run_shell(cmd, **kwargs):
        raise CommandError(["bash", "-c", cmd], 100, "E: Unable to locate package")

    monkeypatch.setattr(pg_mod, "run_shell", fake_run_shell)
    with pytest.raises(InstallError, match="Unable to locate package"):
        PostgreSQLInstaller(agent_config, DEBIAN, logger=logger).install()


def test_busy_port_without_restart_permission(agent_config, monkeypatch):
    monkeypatch.setattr(pg_mod, "is_port_in_use", lambda port: True)
    with pytest.raises(InstallError, match="already in use"):
        PostgreSQLInstaller(agent_config, DEBIAN, logger=logger).release_port()


def test_busy_port_is_stopped_when_allowed(agent_config, monkeypatch):
    calls = []
    agent_config.node.allow_restart_services = True
    monkeypatch.setattr(pg_mod, "is_port_in_use", lambda port: True)
    monkeypatch.setattr(pg_mod, "run_logged", lambda argv, **kw: calls.append(argv))

    PostgreSQLInstaller(agent_config, DEBIAN, logger=logger).release_port()

    assert calls == [[
        "/usr/lib/postgresql/16/bin/pg_ctl", "-D", agent_config.node.postgresql.data_dir, "stop",
    ]]


# ---------------------------------------------------------------------
# Patroni
# ---------------------------------------------------------------------
def test_patroni_commands_by_family(agent_config):
    assert PatroniInstaller(agent_config, DEBIAN, logger=logger).commands()[-1] == [
        "apt-get", "-y", "install", "patroni",
    ]
    assert PatroniInstaller(agent_config, ROCKY, logger=logger).commands() == [
        ["python3", "-m", "pip", "install", "patroni[etcd]"],
    ]


def test_patroni_install_runs_commands_in_order(agent_config, monkeypatch):
    calls = []
    monkeypatch.setattr(patroni_mod, "run_logged", lambda argv, **kw: calls.append((argv, kw["timeout"])))

    PatroniInstaller(agent_config, DEBIAN, logger=logger).install()

    assert [c[0][0:2] for c in calls] == [["apt-get", "update"], ["apt-get", "-y"]]
    assert all(t == agent_config.timeouts.install_command for _, t in calls)


def test_registry_order(agent_config):
    installers = build_installers(cfg=agent_config, os_info=DEBIAN, logger=logger)
    assert list(installers) == ["postgresql", "etcd", "patroni"]
    assert all(inst.name == name for name, inst in installers.items())
