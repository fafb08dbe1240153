# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/dbcp/config/loader.py

import logging
import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import ValidationError

from ..errors import ConfigError
from ..system.os_info import OSInfo, detect_os, guess_postgres_bin_path
from .models import AgentConfig, ClusterFormationMode

log = logging.getLogger("dbcp")

DEFAULT_ETCD_BIN_PATH = "/usr/local/bin"


def _deep_merge(base: dict, override: dict) -> dict:
    """
    Recursively merge *override* into *base* (mutates base).
    Only overwrites when the override value is non-empty.
    """
    for key, value in override.items():
        if (
            key in base
            and isinstance(base[key], dict)
            and isinstance(value, dict)
        ):
            _deep_merge(base[key], value)
        else:
            if value not in (None, ""):
                base[key] = value
    return base


def _find_secrets_file(config_path: Path) -> Path | None:
    """
    Locate secrets.yaml using this priority:

    1. DBCP_SECRETS_FILE environment variable (explicit override)
    2. secrets.yaml in the same directory as the agent config
    """
    env = os.environ.get("DBCP_SECRETS_FILE")
    if env:
        p = Path(env)
        if p.is_file():
            return p
        log.warning("DBCP_SECRETS_FILE=%s does not exist, skipping", env)
        return None

    p = config_path.parent / "secrets.yaml"
    if p.is_file():
        return p

    return None


def _load_yaml(path: Path) -> dict:
    """Load a YAML file, expanding ${ENV_VAR} references."""
    try:
        raw = path.read_text()
    except OSError as exc:
        raise ConfigError(f"failed to read config file {path}: {exc}") from exc
    expanded = os.path.expandvars(raw)
    try:
        data = yaml.safe_load(expanded) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"failed to parse YAML in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: top level must be a mapping")
    return data


def load_config(path: str | Path) -> AgentConfig:
    """
    Load the agent YAML config and validate its shape.

    Passwords may be kept out of the main file: a ``secrets.yaml`` with the
    same structure is discovered (``DBCP_SECRETS_FILE`` first, then next to
    the config) and deep-merged before validation. ``${ENV_VAR}``
    placeholders are expanded in both files.

    Semantic checks and defaults live in :func:`validate_config`, which is
    called once a logger exists so its warnings are visible.
    """
    path = Path(path)
    data = _load_yaml(path)

    secrets_path = _find_secrets_file(path)
    if secrets_path:
        log.debug("Merging secrets from %s", secrets_path)
        _deep_merge(data, _load_yaml(secrets_path))

    try:
        return AgentConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"invalid config {path}:\n{exc}") from exc


def validate_config(
    cfg: AgentConfig,
    logger: logging.Logger,
    os_info: Optional[OSInfo] = None,
) -> AgentConfig:
    """
    Apply defaults and cross-field rules. Mutates and returns *cfg*.
    Raises ConfigError before any side effect has happened.
    """
    node = cfg.node

    if not node.host or not node.name:
        raise ConfigError("node.name and node.host are required")
    if not node.tmp_path:
        raise ConfigError("node.tmp_path is required")

    pg = node.postgresql
    if not pg.version or not pg.data_dir or not pg.user:
        raise ConfigError("postgresql.version, data_dir, and user are required")
    if not pg.bin_path:
        if os_info is None:
            try:
                os_info = detect_os()
            except OSError:
                os_info = OSInfo()
        pg.bin_path = guess_postgres_bin_path(pg.version, os_info)
        logger.warning("postgresql.bin_path not specified, using default: %s", pg.bin_path)

    etcd = node.etcd
    if not etcd.version or not etcd.data_dir or not etcd.peer_port or not etcd.client_port:
        raise ConfigError("etcd.version, data_dir, peer_port, and client_port are required")
    if not etcd.bin_path:
        logger.warning("etcd.bin_path not specified, using default: %s", DEFAULT_ETCD_BIN_PATH)
        etcd.bin_path = DEFAULT_ETCD_BIN_PATH
    if not etcd.cluster_mode:
        logger.warning("etcd.cluster_mode not set, defaulting to 'bootstrap'")
        etcd.cluster_mode = ClusterFormationMode.BOOTSTRAP.value
    elif etcd.cluster_mode not in {m.value for m in ClusterFormationMode}:
        raise ConfigError(
            f"invalid etcd.cluster_mode {etcd.cluster_mode!r}: must be 'bootstrap' or 'join'"
        )

    if not node.patroni.config_path:
        raise ConfigError("patroni.config_path must be defined")

    if not cfg.cluster.name or not cfg.cluster.nodes:
        raise ConfigError("cluster.name and at least one node are required")
    seen = set()
    for member in cfg.cluster.nodes:
        if not member.name or not member.host:
            raise ConfigError("each cluster node must have name and host")
        if member.name in seen:
            raise ConfigError(f"duplicate cluster node name: {member.name}")
        seen.add(member.name)

    topology = cfg.topology()
    self_member = topology.member(node.name)
    if self_member is None:
        raise ConfigError(f"node.name {node.name!r} is not listed in cluster.nodes")
    if self_member.host != node.host:
        # initial-cluster and the advertised URLs must name the same peer
        raise ConfigError(
            f"cluster.nodes entry {node.name!r} has host {self_member.host!r} "
            f"but node.host is {node.host!r}"
        )
    if cfg.formation_mode() is ClusterFormationMode.JOIN and not topology.peers_excluding(node.name):
        raise ConfigError("etcd.cluster_mode 'join' needs at least one other node in cluster.nodes")

    for label, entry in (
        ("postgresql", cfg.repositories.postgresql),
        ("etcd", cfg.repositories.etcd),
    ):
        if not entry.selected():
            raise ConfigError(f"{label} repositories not found for default: {entry.default}")

    return cfg
