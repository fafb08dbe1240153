# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/dbcp/etcd/command.py

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import List, Tuple

from ..config.models import AgentConfig, ClusterMember
from .transport import Transport

STATE_NEW = "new"
STATE_EXISTING = "existing"


@dataclass(frozen=True)
class EtcdCommand:
    """
    Single builder for every etcd / etcdctl argv. Bootstrap and join both
    consume it, so the initial-cluster string has exactly one form:
    ``name=scheme://host:peer_port`` comma-joined, self included.
    """
    name: str
    host: str
    data_dir: str
    members: Tuple[ClusterMember, ...]
    peer_port: int
    client_port: int
    transport: Transport
    bin_path: str

    @classmethod
    def from_config(cls, cfg: AgentConfig, transport: Transport) -> "EtcdCommand":
        etcd = cfg.node.etcd
        return cls(
            name=cfg.node.name,
            host=cfg.node.host,
            data_dir=etcd.data_dir,
            members=cfg.topology().members,
            peer_port=etcd.peer_port,
            client_port=etcd.client_port,
            transport=transport,
            bin_path=etcd.bin_path or "/usr/local/bin",
        )

    # ------------- URLs -------------

    @property
    def etcd_binary(self) -> str:
        return str(Path(self.bin_path) / "etcd")

    @property
    def etcdctl_binary(self) -> str:
        return str(Path(self.bin_path) / "etcdctl")

    def peer_url(self, host: str) -> str:
        return self.transport.url(host, self.peer_port)

    def client_url(self, host: str) -> str:
        return self.transport.url(host, self.client_port)

    @property
    def advertise_peer_url(self) -> str:
        return self.peer_url(self.host)

    def initial_cluster(self) -> str:
        return ",".join(f"{m.name}={self.peer_url(m.host)}" for m in self.members)

    # ------------- argv -------------

    def server_args(self, state: str) -> List[str]:
        if state not in (STATE_NEW, STATE_EXISTING):
            raise ValueError(f"invalid initial-cluster-state: {state}")
        scheme = self.transport.scheme
        return list(self.transport.server_args) + [
            "--name", self.name,
            "--data-dir", self.data_dir,
            "--initial-cluster", self.initial_cluster(),
            "--initial-cluster-state", state,
            f"--initial-advertise-peer-urls={self.advertise_peer_url}",
            f"--listen-peer-urls={scheme}://0.0.0.0:{self.peer_port}",
            f"--listen-client-urls={scheme}://0.0.0.0:{self.client_port}",
            f"--advertise-client-urls={self.client_url(self.host)}",
        ]

    def member_add_argv(self, endpoint: str) -> List[str]:
        return [
            self.etcdctl_binary,
            f"--endpoints={endpoint}",
            *self.transport.etcdctl_args(),
            "member", "add", self.name,
            f"--peer-urls={self.advertise_peer_url}",
        ]
