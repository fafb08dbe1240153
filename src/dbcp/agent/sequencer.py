# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/dbcp/agent/sequencer.py

from __future__ import annotations

import getpass
import logging
import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Protocol, TypeVar

from ..config.models import AgentConfig
from ..errors import LaunchError, StageError
from ..etcd.formation import EtcdFormationController, FormationResult
from ..install.gate import InstallGate, service_specs
from ..install.interface import ServiceInstaller
from ..install.registry import build_installers
from ..observers.dispatcher import EventBus
from ..observers.events import LifecycleEvent, new_ctx, now_ts
from ..patroni.renderer import ConfigRenderer
from ..process.launcher import DetachedLauncher, ProcessHandle, ProcessLauncher
from ..system.dirs import create_dirs, hand_over_dirs, tighten_permissions
from ..system.os_info import OSInfo

log = logging.getLogger("dbcp")

T = TypeVar("T")

STAGE_PREPARE = "prepare"
STAGE_INSTALL = "install"
STAGE_ETCD = "etcd"
STAGE_RENDER = "render"
STAGE_PATRONI = "patroni"
STAGE_HOUSEKEEPING = "housekeeping"


class Formation(Protocol):
    def run(self) -> FormationResult: ...


class Renderer(Protocol):
    def render(self) -> Path: ...


@dataclass
class SequenceReport:
    stages: List[str] = field(default_factory=list)
    installed: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    etcd: Optional[FormationResult] = None
    config_path: Optional[Path] = None
    patroni: Optional[ProcessHandle] = None
    warnings: List[str] = field(default_factory=list)


def _current_user() -> str:
    try:
        return getpass.getuser()
    except (OSError, KeyError):
        return ""


def infrastructure_dirs(cfg: AgentConfig) -> List[str]:
    node = cfg.node
    paths = [
        node.postgresql.data_dir,
        node.etcd.data_dir,
        os.path.dirname(node.etcd.cert_file) if node.etcd.cert_file else "",
        os.path.dirname(node.etcd.key_file) if node.etcd.key_file else "",
        os.path.dirname(node.etcd.ca_file) if node.etcd.ca_file else "",
        os.path.dirname(node.patroni.config_path),
        node.tmp_path,
    ]
    seen: List[str] = []
    for p in paths:
        if p and p not in seen:
            seen.append(p)
    return seen


class StartupSequencer:
    """
    Dependency-ordered bring-up of one node:

      prepare -> install -> etcd -> render -> patroni -> housekeeping

    Strictly sequential; each stage gates the next. The first failure is
    raised as StageError naming the stage and the sub-operation. Nothing is
    rolled back: a later failure leaves earlier stages (e.g. a running
    etcd) in place, and a re-run resumes through the install gate and the
    etcd data-dir checks.
    """

    def __init__(
        self,
        cfg: AgentConfig,
        *,
        gate: InstallGate,
        installers: Dict[str, ServiceInstaller],
        formation: Formation,
        renderer: Renderer,
        launcher: ProcessLauncher,
        bus: Optional[EventBus] = None,
        logger: Optional[logging.Logger] = None,
        prepare_dirs: bool = True,
    ):
        self.cfg = cfg
        self.gate = gate
        self.installers = installers
        self.formation = formation
        self.renderer = renderer
        self.launcher = launcher
        self.log = logger or log
        self.bus = bus or EventBus(logger=self.log)
        self.prepare_dirs = prepare_dirs
        self.run_ctx = new_ctx(cluster=cfg.cluster.name, node=cfg.node.name)

    @classmethod
    def from_config(
        cls,
        cfg: AgentConfig,
        *,
        os_info: OSInfo,
        logger: logging.Logger,
        bus: Optional[EventBus] = None,
        launcher: Optional[ProcessLauncher] = None,
    ) -> "StartupSequencer":
        launcher = launcher or DetachedLauncher(logger)
        formation = EtcdFormationController.from_config(cfg, launcher=launcher, logger=logger)
        return cls(
            cfg,
            gate=InstallGate(service_specs(cfg).values(), probe_timeout=cfg.timeouts.version_probe, logger=logger),
            installers=build_installers(cfg=cfg, os_info=os_info, logger=logger),
            formation=formation,
            # same transport etcd is started with
            renderer=ConfigRenderer(cfg, formation.command.transport, logger=logger),
            launcher=launcher,
            bus=bus,
            logger=logger,
        )

    # ------------- events -------------

    def _emit(self, stage: str, status: str, message: str) -> None:
        ctx = dict(self.run_ctx, ts=now_ts())
        self.bus.emit(LifecycleEvent(**ctx, stage=stage, status=status, message=message))

    def _step(self, stage: str, operation: str, fn: Callable[[], T]) -> T:
        try:
            return fn()
        except StageError:
            raise
        except Exception as exc:
            err = StageError(stage, operation, exc)
            self.log.error("%s", err)
            self._emit(stage, "FAILURE", str(err))
            raise err from exc

    def _enter(self, stage: str, message: str) -> None:
        self.log.info("[%s] %s", stage, message)
        self._emit(stage, "START", message)

    def _done(self, report: SequenceReport, stage: str, message: str) -> None:
        report.stages.append(stage)
        self._emit(stage, "SUCCESS", message)

    # ------------- stages -------------

    def _prepare(self, report: SequenceReport) -> None:
        self._enter(STAGE_PREPARE, "Creating infrastructure directories")
        if self.prepare_dirs:
            self._step(
                STAGE_PREPARE, "create directories",
                lambda: create_dirs(infrastructure_dirs(self.cfg), logger=self.log),
            )
        self._done(report, STAGE_PREPARE, "directories ready")

    def _install(self, report: SequenceReport) -> None:
        self._enter(STAGE_INSTALL, "Checking installed services")
        for name, installer in self.installers.items():
            if not self._step(STAGE_INSTALL, f"check {name}", lambda: self.gate.should_install(name)):
                report.skipped.append(name)
                continue
            self.log.info("Installing %s...", name)
            self._step(STAGE_INSTALL, f"install {name}", installer.install)
            report.installed.append(name)
        if self.prepare_dirs:
            # os_user exists only once its package is in place
            self._step(
                STAGE_INSTALL, "hand directories to os_user",
                lambda: hand_over_dirs(infrastructure_dirs(self.cfg), owner=self.cfg.node.os_user, logger=self.log),
            )
        self._done(report, STAGE_INSTALL, f"installed={report.installed} skipped={report.skipped}")

    def _etcd(self, report: SequenceReport) -> None:
        self._enter(STAGE_ETCD, "Starting etcd (bootstrap or join)")
        report.etcd = self._step(STAGE_ETCD, "cluster formation", self.formation.run)
        self._done(report, STAGE_ETCD, f"etcd {report.etcd.state.value}")

    def _render(self, report: SequenceReport) -> None:
        self._enter(STAGE_RENDER, "Generating Patroni config")
        report.config_path = self._step(STAGE_RENDER, "render patroni config", self.renderer.render)
        self._done(report, STAGE_RENDER, f"written {report.config_path}")

    def patroni_argv(self) -> List[str]:
        patroni = self.cfg.node.patroni
        if patroni.bin_path:
            binary = str(Path(patroni.bin_path) / "patroni")
        else:
            binary = shutil.which("patroni") or "patroni"

        argv = [binary, patroni.config_path]
        user = self.cfg.node.os_user
        if user and user != _current_user():
            argv = ["sudo", "-u", user] + argv
        return argv

    def _launch_patroni(self) -> ProcessHandle:
        config_path = Path(self.cfg.node.patroni.config_path)
        if not config_path.is_file():
            raise LaunchError(f"patroni config not found at {config_path}")
        argv = self.patroni_argv()
        self.log.info("Starting Patroni as user %s", self.cfg.node.os_user)
        return self.launcher.launch(argv[0], argv[1:], Path(self.cfg.node.tmp_path) / "patroni.log")

    def _patroni(self, report: SequenceReport) -> None:
        self._enter(STAGE_PATRONI, "Starting Patroni")
        report.patroni = self._step(STAGE_PATRONI, "launch patroni", self._launch_patroni)
        self._done(report, STAGE_PATRONI, f"patroni pid {report.patroni.pid()}")

    def _housekeeping(self, report: SequenceReport) -> None:
        self._enter(STAGE_HOUSEKEEPING, "Tightening PostgreSQL data directory permissions")
        data_dir = self.cfg.node.postgresql.data_dir
        try:
            tighten_permissions(data_dir, 0o700)
        except OSError as exc:
            # degraded but running
            msg = f"failed to chmod PostgreSQL data dir ({data_dir}) to 0700: {exc}"
            self.log.warning(msg)
            report.warnings.append(msg)
            self._emit(STAGE_HOUSEKEEPING, "WARNING", msg)
        else:
            self.log.info("PostgreSQL data directory permissions set to 0700")
        self._done(report, STAGE_HOUSEKEEPING, "done")

    # ------------- entry point -------------

    def bootstrap(self) -> SequenceReport:
        report = SequenceReport()
        self._prepare(report)
        self._install(report)
        self._etcd(report)
        self._render(report)
        self._patroni(report)
        self._housekeeping(report)
        self.log.info("Node %s is up (stages: %s)", self.cfg.node.name, ", ".join(report.stages))
        return report
