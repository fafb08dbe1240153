# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/dbcp/install/gate.py

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from ..config.models import AgentConfig
from ..errors import CommandError, ConfigError
from ..utils.shell import run_logged

log = logging.getLogger("dbcp")


@dataclass(frozen=True)
class ServiceSpec:
    """
    What "installed" means for one managed service. Never cached: every
    check goes back to the filesystem and the binary itself.
    """
    name: str
    binaries: Tuple[str, ...]            # first one answers the version probe
    expected_version: str
    bin_path: Optional[str] = None       # None -> look the first binary up on PATH
    version_flag: str = "--version"

    def binary_paths(self) -> List[Path]:
        if self.bin_path:
            return [Path(self.bin_path) / b for b in self.binaries]
        found = shutil.which(self.binaries[0])
        return [Path(found)] if found else []


def service_specs(cfg: AgentConfig) -> Dict[str, ServiceSpec]:
    """Managed services, in install order."""
    node = cfg.node
    return {
        "postgresql": ServiceSpec(
            name="postgresql",
            binaries=("postgres", "initdb"),
            expected_version=node.postgresql.version,
            bin_path=node.postgresql.bin_path,
        ),
        "etcd": ServiceSpec(
            name="etcd",
            binaries=("etcd", "etcdctl"),
            expected_version=node.etcd.version,
            bin_path=node.etcd.bin_path,
        ),
        "patroni": ServiceSpec(
            name="patroni",
            binaries=("patroni",),
            expected_version=node.patroni.version,
            bin_path=node.patroni.bin_path,
        ),
    }


class InstallGate:
    """
    Decides whether a service needs installing. Any doubt (missing file,
    failed probe, version mismatch) answers "install".
    """

    def __init__(
        self,
        specs: Iterable[ServiceSpec],
        *,
        probe_timeout: float = 10.0,
        logger: Optional[logging.Logger] = None,
    ):
        self.specs = {s.name: s for s in specs}
        self.probe_timeout = probe_timeout
        self.log = logger or log

    def spec(self, service_name: str) -> ServiceSpec:
        try:
            return self.specs[service_name]
        except KeyError:
            raise ConfigError(f"unknown managed service: {service_name}") from None

    def is_installed(self, service_name: str) -> bool:
        spec = self.spec(service_name)

        paths = spec.binary_paths()
        if not paths:
            self.log.debug("%s: %s not found on PATH", spec.name, spec.binaries[0])
            return False
        for p in paths:
            if not p.is_file():
                self.log.debug("%s: %s is missing", spec.name, p)
                return False

        try:
            cp = run_logged(
                [str(paths[0]), spec.version_flag],
                logger=self.log,
                label=f"{spec.name}-version",
                timeout=self.probe_timeout,
                check=True,
                merge_stderr=False,
            )
        except CommandError as exc:
            self.log.warning("%s version check failed: %s", spec.name, exc)
            return False

        if spec.expected_version not in (cp.stdout or ""):
            self.log.info(
                "%s version mismatch: expected %r, got %r",
                spec.name, spec.expected_version, (cp.stdout or "").strip(),
            )
            return False
        return True

    def should_install(self, service_name: str) -> bool:
        if self.is_installed(service_name):
            self.log.info("%s already installed, skipping installation", service_name)
            return False
        self.log.info("%s not installed or incompatible, installation required", service_name)
        return True
