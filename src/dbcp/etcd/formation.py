# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/dbcp/etcd/formation.py

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional, Protocol

import requests

from ..config.models import AgentConfig, ClusterFormationMode, ClusterMember
from ..errors import CommandError, MemberRegistrationError, NoHealthyPeerError
from ..process.launcher import ProcessHandle, ProcessLauncher
from ..utils.shell import run_logged
from .command import STATE_EXISTING, STATE_NEW, EtcdCommand
from .transport import Transport, select_transport

log = logging.getLogger("dbcp")


class FormationState(str, Enum):
    IDLE = "idle"
    BOOTSTRAPPING = "bootstrapping"
    DISCOVERING = "discovering"
    JOINING = "joining"
    RUNNING = "running"
    FAILED = "failed"


# ---------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------
class HealthProbe(Protocol):
    def check(self, client_url: str) -> bool: ...


class MemberRegistrar(Protocol):
    def register(self, command: EtcdCommand, endpoint: str) -> None: ...


def is_truthy_health(body: object) -> bool:
    if not isinstance(body, dict):
        return False
    value = body.get("health")
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return value is True


class HttpHealthProbe:
    """GET <client_url>/health with the TLS settings of one Transport."""

    def __init__(
        self,
        transport: Transport,
        *,
        timeout: float = 5.0,
        session: Optional[requests.Session] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.transport = transport
        self.timeout = timeout
        self.session = session or requests.Session()
        self.log = logger or log

    def check(self, client_url: str) -> bool:
        url = f"{client_url.rstrip('/')}/health"
        try:
            r = self.session.get(url, timeout=self.timeout, **self.transport.http_kwargs())
            if r.status_code != 200:
                self.log.debug("health probe %s -> HTTP %s", url, r.status_code)
                return False
            return is_truthy_health(r.json())
        except (requests.RequestException, ValueError) as exc:
            self.log.debug("health probe %s failed: %s", url, exc)
            return False


class EtcdctlRegistrar:
    """``etcdctl member add`` against a healthy peer."""

    def __init__(self, *, timeout: float = 30.0, logger: Optional[logging.Logger] = None):
        self.timeout = timeout
        self.log = logger or log

    def register(self, command: EtcdCommand, endpoint: str) -> None:
        argv = command.member_add_argv(endpoint)
        try:
            cp = run_logged(argv, logger=self.log, label="etcdctl-member-add", timeout=self.timeout)
        except CommandError as exc:
            raise MemberRegistrationError(
                f"membership registration of {command.name} via {endpoint} rejected",
                output=exc.output,
            ) from exc
        self.log.info("Registered %s with the cluster via %s", command.name, endpoint)
        self.log.debug("etcdctl output:\n%s", (cp.stdout or "").strip())


# ---------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class FormationAttempt:
    peer: ClusterMember
    healthy: bool


@dataclass
class FormationResult:
    state: FormationState
    mode: ClusterFormationMode
    cluster_state: Optional[str] = None        # new | existing; None when already running
    found_peer: Optional[ClusterMember] = None
    handle: Optional[ProcessHandle] = None
    attempts: List[FormationAttempt] = field(default_factory=list)


# ---------------------------------------------------------------------
# Controller
# ---------------------------------------------------------------------
class EtcdFormationController:
    """
    Brings the local etcd member up, either by originating a new ring
    (bootstrap) or by registering with a running one (join).

        IDLE -> BOOTSTRAPPING ------------------> RUNNING
        IDLE -> DISCOVERING -> JOINING ---------> RUNNING
        any  -> FAILED

    Join probes peers in configured order and takes the first healthy one.
    No retries: an exhausted peer list or a rejected registration is fatal.

    Prior state is honoured: a local etcd that already answers healthy is
    left alone, and a data dir holding member data restarts from it
    without registering again.
    """

    def __init__(
        self,
        *,
        command: EtcdCommand,
        mode: ClusterFormationMode,
        log_file: str | Path,
        launcher: ProcessLauncher,
        probe: HealthProbe,
        registrar: MemberRegistrar,
        logger: Optional[logging.Logger] = None,
    ):
        self.command = command
        self.mode = mode
        self.log_file = Path(log_file)
        self.launcher = launcher
        self.probe = probe
        self.registrar = registrar
        self.log = logger or log
        self.state = FormationState.IDLE
        self.attempts: List[FormationAttempt] = []

    @classmethod
    def from_config(
        cls,
        cfg: AgentConfig,
        *,
        launcher: ProcessLauncher,
        logger: Optional[logging.Logger] = None,
        probe: Optional[HealthProbe] = None,
        registrar: Optional[MemberRegistrar] = None,
    ) -> "EtcdFormationController":
        logger = logger or log
        etcd = cfg.node.etcd
        # one evaluation for argv, probe client and etcdctl
        transport = select_transport(etcd.cert_file, etcd.key_file, etcd.ca_file, logger)
        return cls(
            command=EtcdCommand.from_config(cfg, transport),
            mode=cfg.formation_mode(),
            log_file=Path(cfg.node.tmp_path) / "etcd.log",
            launcher=launcher,
            probe=probe or HttpHealthProbe(transport, timeout=cfg.timeouts.health_probe, logger=logger),
            registrar=registrar or EtcdctlRegistrar(timeout=cfg.timeouts.member_add, logger=logger),
            logger=logger,
        )

    # ------------- helpers -------------

    def _transition(self, state: FormationState) -> None:
        self.log.debug("etcd formation: %s -> %s", self.state.value, state.value)
        self.state = state

    def _has_member_data(self) -> bool:
        return (Path(self.command.data_dir) / "member").is_dir()

    def _launch(self, cluster_state: str) -> ProcessHandle:
        self.log.info(
            "Starting etcd %s with initial-cluster-state=%s, initial-cluster=%s",
            self.command.name, cluster_state, self.command.initial_cluster(),
        )
        return self.launcher.launch(
            self.command.etcd_binary,
            self.command.server_args(cluster_state),
            self.log_file,
        )

    def _result(self, cluster_state: Optional[str], handle: Optional[ProcessHandle],
                found_peer: Optional[ClusterMember] = None) -> FormationResult:
        return FormationResult(
            state=self.state,
            mode=self.mode,
            cluster_state=cluster_state,
            found_peer=found_peer,
            handle=handle,
            attempts=list(self.attempts),
        )

    # ------------- discovery -------------

    def discover(self) -> ClusterMember:
        """First healthy non-self member, in configured order."""
        candidates = [m for m in self.command.members if m.name != self.command.name]
        if not candidates:
            raise NoHealthyPeerError(
                f"no healthy peer: cluster has no members besides {self.command.name}"
            )

        for peer in candidates:
            url = self.command.client_url(peer.host)
            healthy = self.probe.check(url)
            self.attempts.append(FormationAttempt(peer=peer, healthy=healthy))
            self.log.info("Probed %s (%s): %s", peer.name, url, "healthy" if healthy else "unhealthy")
            if healthy:
                return peer

        tried = ", ".join(f"{a.peer.name} ({self.command.client_url(a.peer.host)})" for a in self.attempts)
        raise NoHealthyPeerError(f"no healthy peer found to join; tried: {tried}")

    # ------------- run -------------

    def run(self) -> FormationResult:
        try:
            return self._run()
        except Exception:
            self._transition(FormationState.FAILED)
            raise

    def _run(self) -> FormationResult:
        self.attempts = []

        if self.probe.check(self.command.client_url(self.command.host)):
            self.log.info("etcd already running and healthy on %s, not starting another", self.command.host)
            self._transition(FormationState.RUNNING)
            return self._result(None, None)

        if self._has_member_data():
            self.log.info(
                "etcd data dir %s already holds member data, restarting existing member",
                self.command.data_dir,
            )
            handle = self._launch(STATE_EXISTING)
            self._transition(FormationState.RUNNING)
            return self._result(STATE_EXISTING, handle)

        if self.mode is ClusterFormationMode.BOOTSTRAP:
            self._transition(FormationState.BOOTSTRAPPING)
            handle = self._launch(STATE_NEW)
            self._transition(FormationState.RUNNING)
            return self._result(STATE_NEW, handle)

        self._transition(FormationState.DISCOVERING)
        peer = self.discover()

        self._transition(FormationState.JOINING)
        self.registrar.register(self.command, self.command.client_url(peer.host))
        handle = self._launch(STATE_EXISTING)
        self._transition(FormationState.RUNNING)
        return self._result(STATE_EXISTING, handle, found_peer=peer)
