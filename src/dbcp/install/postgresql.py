# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/dbcp/install/postgresql.py

from __future__ import annotations

import logging
import socket
from pathlib import Path
from typing import List, Optional

from ..config.models import AgentConfig
from ..errors import CommandError, InstallError
from ..system.os_info import OSInfo
from ..utils.shell import run_logged, run_shell

log = logging.getLogger("dbcp")

PGDG_KEY_URL = "https://www.postgresql.org/media/keys/ACCC4CF8.asc"
PGDG_KEYRING = "/usr/share/postgresql-common/pgdg/apt.postgresql.org.asc"


def apt_commands(version: str, repo_url: str) -> List[str]:
    return [
        "apt-get update",
        "apt-get install -y curl ca-certificates gnupg lsb-release",
        "mkdir -p /usr/share/postgresql-common/pgdg",
        f"curl -sSL {PGDG_KEY_URL} -o {PGDG_KEYRING}",
        f'echo "deb [signed-by={PGDG_KEYRING}] {repo_url} $(lsb_release -cs)-pgdg main" '
        "> /etc/apt/sources.list.d/pgdg.list",
        "apt-get update",
        f"apt-get install -y postgresql-{version}",
        # Patroni owns the server; the distro unit must not start it
        "systemctl stop postgresql",
        "systemctl disable postgresql",
    ]


def dnf_commands(version: str, os_version: str, repo_url: str, tmp_path: str) -> List[str]:
    major = (os_version or "9").split(".")[0]
    rpm_url = f"{repo_url.rstrip('/')}/reporpms/EL-{major}-x86_64/pgdg-redhat-repo-latest.noarch.rpm"
    rpm_file = str(Path(tmp_path) / "pgdg-redhat-repo-latest.noarch.rpm")
    return [
        f"curl -sSL -o {rpm_file} {rpm_url}",
        f"dnf install -y {rpm_file}",
        "dnf -qy module disable postgresql",
        f"dnf install -y postgresql{version}-server postgresql{version}",
    ]


def is_port_in_use(port: int, host: str = "0.0.0.0") -> bool:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        try:
            s.bind((host, port))
        except OSError:
            return True
    return False


class PostgreSQLInstaller:
    """
    Installs PostgreSQL packages from the PGDG repositories (apt or dnf),
    then makes sure no stray server holds the port Patroni will need.
    """

    name = "postgresql"

    def __init__(self, cfg: AgentConfig, os_info: OSInfo, *, logger: Optional[logging.Logger] = None):
        self.cfg = cfg
        self.os_info = os_info
        self.log = logger or log

    def commands(self) -> List[str]:
        pg = self.cfg.node.postgresql
        repo_url = self.cfg.repositories.postgresql.selected().get(self.os_info.family)
        if not repo_url:
            raise InstallError(
                f"no postgresql repository for OS family {self.os_info.family!r} "
                f"in source {self.cfg.repositories.postgresql.default!r}"
            )
        if self.os_info.family == "debian":
            return apt_commands(pg.version, repo_url)
        if self.os_info.family in ("rhel", "fedora"):
            return dnf_commands(pg.version, self.os_info.version_id, repo_url, self.cfg.node.tmp_path)
        raise InstallError(f"unsupported OS: {self.os_info.id or 'unknown'}")

    def install(self) -> None:
        pg = self.cfg.node.postgresql
        self.log.info("Preparing to install PostgreSQL version %s...", pg.version)

        for cmd in self.commands():
            try:
                run_shell(cmd, logger=self.log, label="postgresql-install",
                          timeout=self.cfg.timeouts.install_command)
            except CommandError as exc:
                raise InstallError(f"PostgreSQL install step failed: {exc}") from exc

        self.release_port()
        self.log.info("PostgreSQL %s installation complete", pg.version)

    def release_port(self) -> None:
        port = self.cfg.node.postgresql.parameters.port
        if not is_port_in_use(port):
            return
        if not self.cfg.node.allow_restart_services:
            raise InstallError(
                f"port {port} is already in use and node.allow_restart_services is false"
            )

        self.log.warning("PostgreSQL appears to be running on port %s, stopping it...", port)
        pg = self.cfg.node.postgresql
        try:
            run_logged(
                [str(Path(pg.bin_path or "") / "pg_ctl"), "-D", pg.data_dir, "stop"],
                logger=self.log,
                label="pg_ctl-stop",
                timeout=self.cfg.timeouts.install_command,
            )
        except CommandError as exc:
            raise InstallError(f"failed to stop running PostgreSQL: {exc}") from exc
        self.log.info("Stopped running PostgreSQL instance")
