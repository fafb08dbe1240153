import logging
import os
from pathlib import Path

import pytest

from dbcp.errors import ConfigError
from dbcp.install.gate import InstallGate, ServiceSpec, service_specs

logger = logging.getLogger("dbcp-test")


def fake_binary(directory: Path, name: str, output: str, rc: int = 0) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    p = directory / name
    p.write_text(f"#!/bin/sh\necho '{output}'\nexit {rc}\n")
    os.chmod(p, 0o755)
    return p


def test_matching_version_is_installed(tmp_path: Path):
    bin_dir = tmp_path / "bin"
    fake_binary(bin_dir, "etcd", "etcd Version: 3.5.12")
    fake_binary(bin_dir, "etcdctl", "etcdctl version: 3.5.12")
    gate = InstallGate([ServiceSpec("etcd", ("etcd", "etcdctl"), "3.5.12", str(bin_dir))], logger=logger)

    assert gate.is_installed("etcd") is True
    assert gate.should_install("etcd") is False


def test_version_mismatch_requires_install(tmp_path: Path):
    bin_dir = tmp_path / "bin"
    fake_binary(bin_dir, "etcd", "etcd Version: 3.4.0")
    fake_binary(bin_dir, "etcdctl", "etcdctl version: 3.4.0")
    gate = InstallGate([ServiceSpec("etcd", ("etcd", "etcdctl"), "3.5.12", str(bin_dir))], logger=logger)

    assert gate.should_install("etcd") is True


def test_missing_companion_binary_requires_install(tmp_path: Path):
    bin_dir = tmp_path / "bin"
    fake_binary(bin_dir, "postgres", "postgres (PostgreSQL) 16.2")
    gate = InstallGate([ServiceSpec("postgresql", ("postgres", "initdb"), "16", str(bin_dir))], logger=logger)

    assert gate.is_installed("postgresql") is False


def test_failing_version_probe_requires_install(tmp_path: Path):
    bin_dir = tmp_path / "bin"
    fake_binary(bin_dir, "patroni", "patroni 3.3.0", rc=1)
    gate = InstallGate([ServiceSpec("patroni", ("patroni",), "3.3.0", str(bin_dir))], logger=logger)

    assert gate.is_installed("patroni") is False


def test_binary_looked_up_on_path(tmp_path: Path, monkeypatch):
    bin_dir = tmp_path / "path-bin"
    fake_binary(bin_dir, "patroni", "patroni 3.3.0")
    monkeypatch.setenv("PATH", f"{bin_dir}{os.pathsep}{os.environ.get('PATH', '')}")
    gate = InstallGate([ServiceSpec("patroni", ("patroni",), "3.3.0")], logger=logger)

    assert gate.is_installed("patroni") is True


def test_unknown_service_is_config_error():
    gate = InstallGate([], logger=logger)
    with pytest.raises(ConfigError):
        gate.is_installed("redis")


def test_service_specs_in_install_order(agent_config):
    specs = service_specs(agent_config)
    assert list(specs) == ["postgresql", "etcd", "patroni"]
    assert specs["postgresql"].binaries == ("postgres", "initdb")
    assert specs["etcd"].bin_path == agent_config.node.etcd.bin_path
    assert specs["patroni"].bin_path is None
