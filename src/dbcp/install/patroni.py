# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/dbcp/install/patroni.py

from __future__ import annotations

import logging
from typing import List, Optional

from ..config.models import AgentConfig
from ..errors import CommandError, InstallError
from ..system.os_info import OSInfo
from ..utils.shell import run_logged

log = logging.getLogger("dbcp")


class PatroniInstaller:
    """apt package on Debian-family hosts, pip elsewhere."""

    name = "patroni"

    def __init__(self, cfg: AgentConfig, os_info: OSInfo, *, logger: Optional[logging.Logger] = None):
        self.cfg = cfg
        self.os_info = os_info
        self.log = logger or log

    def commands(self) -> List[List[str]]:
        source = self.cfg.repositories.patroni.selected()
        if self.os_info.family == "debian":
            pkg = source.get("debian_package", "patroni")
            return [["apt-get", "update"], ["apt-get", "-y", "install", pkg]]
        if self.os_info.family in ("rhel", "fedora"):
            pkg = source.get("rhel_pip", "patroni[etcd]")
            return [["python3", "-m", "pip", "install", pkg]]
        raise InstallError(f"unsupported OS family: {self.os_info.family or 'unknown'}")

    def install(self) -> None:
        self.log.info("Installing Patroni...")
        for argv in self.commands():
            try:
                run_logged(argv, logger=self.log, label="patroni-install",
                           timeout=self.cfg.timeouts.install_command)
            except CommandError as exc:
                raise InstallError(f"Patroni installation failed: {exc}") from exc
        self.log.info("Patroni installed")
