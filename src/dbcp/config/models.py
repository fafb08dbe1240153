# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/dbcp/config/models.py

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, Field


class ClusterFormationMode(str, Enum):
    BOOTSTRAP = "bootstrap"
    JOIN = "join"


# ---------------------------------------------------------------------
# PostgreSQL
# ---------------------------------------------------------------------
class PostgresUser(BaseModel):
    password: str
    options: List[str] = Field(default_factory=list)


class PostgresParameters(BaseModel):
    """
    Runtime parameters. ``port``, ``use_pg_rewind`` and ``use_slots`` are
    consumed by Patroni itself; anything else is passed through to
    ``postgresql.parameters`` in the rendered config.
    """
    port: int = 5432
    use_pg_rewind: bool = True
    use_slots: bool = True

    model_config = {
        "extra": "allow",
    }

    def passthrough(self) -> Dict[str, Any]:
        return dict(self.model_extra or {})


class PostgreSQLConfig(BaseModel):
    version: str
    data_dir: str
    bin_path: Optional[str] = None
    user: str = "postgres"
    users: Dict[str, PostgresUser] = Field(default_factory=dict)
    parameters: PostgresParameters = Field(default_factory=PostgresParameters)
    # list of single-key mappings; an empty value renders as a bare flag
    initdb: List[Dict[str, Optional[str]]] = Field(default_factory=list)
    pg_hba: List[str] = Field(default_factory=list)


# ---------------------------------------------------------------------
# etcd
# ---------------------------------------------------------------------
class EtcdConfig(BaseModel):
    version: str
    data_dir: str
    bin_path: Optional[str] = None
    cert_file: str = ""
    key_file: str = ""
    ca_file: str = ""
    peer_port: int = 2380
    client_port: int = 2379
    cluster_mode: Optional[str] = None   # bootstrap | join


# ---------------------------------------------------------------------
# Patroni
# ---------------------------------------------------------------------
class UserCredentials(BaseModel):
    username: str
    password: str


class PatroniAuthentication(BaseModel):
    superuser: UserCredentials
    replication: UserCredentials


class DCSSettings(BaseModel):
    ttl: int = 30
    loop_wait: int = 10
    retry_timeout: int = 10
    maximum_lag_on_failover: int = 1048576


class PatroniConfig(BaseModel):
    version: str
    namespace: str = "/service/"
    api_listen: str = "0.0.0.0"
    port: int = 8008
    config_path: str
    template_path: Optional[str] = None   # None -> bundled template
    bin_path: Optional[str] = None        # None -> look up on PATH
    dcs: DCSSettings = Field(default_factory=DCSSettings)
    authentication: PatroniAuthentication
    create_replica_methods: List[str] = Field(default_factory=lambda: ["basebackup"])
    tags: Dict[str, Any] = Field(default_factory=dict)


# ---------------------------------------------------------------------
# Node / cluster
# ---------------------------------------------------------------------
class NodeConfig(BaseModel):
    name: str
    host: str
    role: str = "database"
    os_user: str
    tmp_path: str
    allow_restart_services: bool = False
    postgresql: PostgreSQLConfig
    etcd: EtcdConfig
    patroni: PatroniConfig


class ClusterNode(BaseModel):
    name: str
    host: str


class ClusterConfig(BaseModel):
    name: str
    nodes: List[ClusterNode] = Field(default_factory=list)


# ---------------------------------------------------------------------
# Repositories
# ---------------------------------------------------------------------
class RepoEntry(BaseModel):
    default: str = "official"
    sources: Dict[str, Dict[str, str]] = Field(default_factory=dict)

    def selected(self) -> Dict[str, str]:
        return self.sources.get(self.default, {})


class Repositories(BaseModel):
    postgresql: RepoEntry = Field(default_factory=RepoEntry)
    etcd: RepoEntry = Field(default_factory=RepoEntry)
    patroni: RepoEntry = Field(default_factory=RepoEntry)


class TimeoutSettings(BaseModel):
    """Per-call bounds (seconds) for every blocking external operation."""
    health_probe: float = 5.0
    member_add: float = 30.0
    version_probe: float = 10.0
    install_command: float = 900.0
    download: float = 300.0


# ---------------------------------------------------------------------
# Derived, immutable views
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class NodeIdentity:
    name: str
    host: str
    os_user: str


@dataclass(frozen=True)
class ClusterMember:
    name: str
    host: str


@dataclass(frozen=True)
class ClusterTopology:
    cluster_name: str
    members: Tuple[ClusterMember, ...]

    def peers_excluding(self, name: str) -> Tuple[ClusterMember, ...]:
        return tuple(m for m in self.members if m.name != name)

    def member(self, name: str) -> Optional[ClusterMember]:
        for m in self.members:
            if m.name == name:
                return m
        return None


@dataclass(frozen=True)
class LogSettings:
    level: str = "info"
    output: str = "stdout"
    file_path: Optional[str] = None
    max_size_mb: int = 10
    max_backups: int = 3
    max_age_days: int = 7
    compress: bool = True


class AgentConfig(BaseModel):
    log_level: str = "info"
    log_output: Literal["stdout", "file"] = "stdout"
    log_file_path: Optional[str] = None
    log_max_size_mb: int = 10
    log_max_backups: int = 3
    log_max_age_days: int = 7
    log_compress: bool = True

    node: NodeConfig
    cluster: ClusterConfig
    repositories: Repositories = Field(default_factory=Repositories)
    timeouts: TimeoutSettings = Field(default_factory=TimeoutSettings)

    model_config = {
        "extra": "forbid",
    }

    def identity(self) -> NodeIdentity:
        return NodeIdentity(name=self.node.name, host=self.node.host, os_user=self.node.os_user)

    def topology(self) -> ClusterTopology:
        return ClusterTopology(
            cluster_name=self.cluster.name,
            members=tuple(ClusterMember(name=n.name, host=n.host) for n in self.cluster.nodes),
        )

    def formation_mode(self) -> ClusterFormationMode:
        return ClusterFormationMode(self.node.etcd.cluster_mode or ClusterFormationMode.BOOTSTRAP.value)

    def log_settings(self) -> LogSettings:
        return LogSettings(
            level=self.log_level,
            output=self.log_output,
            file_path=self.log_file_path,
            max_size_mb=self.log_max_size_mb,
            max_backups=self.log_max_backups,
            max_age_days=self.log_max_age_days,
            compress=self.log_compress,
        )
