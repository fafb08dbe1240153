# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/dbcp/install/registry.py

from __future__ import annotations

import logging
from typing import Dict

from dbcp.config.models import AgentConfig
from dbcp.install.etcd import EtcdInstaller
from dbcp.install.interface import ServiceInstaller
from dbcp.install.patroni import PatroniInstaller
from dbcp.install.postgresql import PostgreSQLInstaller
from dbcp.system.os_info import OSInfo


def build_installers(
    *,
    cfg: AgentConfig,
    os_info: OSInfo,
    logger: logging.Logger,
) -> Dict[str, ServiceInstaller]:
    """Installers keyed by managed service name, in install order."""
    return {
        "postgresql": PostgreSQLInstaller(cfg, os_info, logger=logger),
        "etcd": EtcdInstaller(cfg, logger=logger),
        "patroni": PatroniInstaller(cfg, os_info, logger=logger),
    }
