import logging
from pathlib import Path

import pytest

from dbcp.config.loader import load_config, validate_config
from dbcp.config.models import ClusterFormationMode
from dbcp.errors import ConfigError
from dbcp.etcd.command import EtcdCommand
from dbcp.etcd.transport import select_transport
from dbcp.system.os_info import OSInfo

logger = logging.getLogger("dbcp-test")
DEBIAN = OSInfo(id="ubuntu", version_id="22.04", family="debian")


def test_load_config_minimal_ok(raw_config, write_config):
    cfg = load_config(write_config(raw_config))
    assert cfg.node.name == "db1"
    assert cfg.cluster.name == "pg-ha"
    assert [m.name for m in cfg.topology().members] == ["db1", "db2", "db3"]
    assert cfg.node.postgresql.parameters.passthrough() == {"max_connections": 200, "wal_level": "replica"}


def test_unknown_top_level_key_is_rejected(raw_config, write_config):
    raw_config["bogus"] = True
    with pytest.raises(ConfigError, match="invalid config"):
        load_config(write_config(raw_config))


def test_yaml_syntax_error_is_config_error(tmp_path: Path):
    f = tmp_path / "bad.yaml"
    f.write_text("node: [unclosed\n")
    with pytest.raises(ConfigError, match="failed to parse YAML"):
        load_config(f)


def test_missing_file_is_config_error(tmp_path: Path):
    with pytest.raises(ConfigError, match="failed to read"):
        load_config(tmp_path / "nope.yaml")


def test_env_vars_are_expanded(raw_config, write_config, monkeypatch):
    monkeypatch.setenv("PG_SUPER_PW", "from-env")
    raw_config["node"]["patroni"]["authentication"]["superuser"]["password"] = "${PG_SUPER_PW}"
    cfg = load_config(write_config(raw_config))
    assert cfg.node.patroni.authentication.superuser.password == "from-env"


def test_secrets_file_next_to_config_is_merged(raw_config, write_config, monkeypatch):
    monkeypatch.delenv("DBCP_SECRETS_FILE", raising=False)
    raw_config["node"]["patroni"]["authentication"]["replication"]["password"] = ""
    path = write_config(raw_config)
    write_config(
        {"node": {"patroni": {"authentication": {"replication": {"password": "merged"}}}}},
        name="secrets.yaml",
    )
    cfg = load_config(path)
    assert cfg.node.patroni.authentication.replication.password == "merged"
    # untouched siblings survive the merge
    assert cfg.node.patroni.authentication.replication.username == "replicator"


def test_validate_applies_defaults(agent_config):
    agent_config.node.etcd.cluster_mode = None
    agent_config.node.etcd.bin_path = None
    agent_config.node.postgresql.bin_path = None

    validate_config(agent_config, logger, DEBIAN)

    assert agent_config.formation_mode() is ClusterFormationMode.BOOTSTRAP
    assert agent_config.node.etcd.bin_path == "/usr/local/bin"
    assert agent_config.node.postgresql.bin_path == "/usr/lib/postgresql/16/bin"


def test_validate_rejects_unknown_mode(agent_config):
    agent_config.node.etcd.cluster_mode = "adopt"
    with pytest.raises(ConfigError, match="must be 'bootstrap' or 'join'"):
        validate_config(agent_config, logger, DEBIAN)


def test_validate_rejects_join_without_peers(agent_config):
    agent_config.node.etcd.cluster_mode = "join"
    agent_config.cluster.nodes = agent_config.cluster.nodes[:1]
    with pytest.raises(ConfigError, match="at least one other node"):
        validate_config(agent_config, logger, DEBIAN)


def test_validate_rejects_node_missing_from_topology(agent_config):
    agent_config.node.name = "db9"
    with pytest.raises(ConfigError, match="not listed in cluster.nodes"):
        validate_config(agent_config, logger, DEBIAN)


def test_validate_rejects_duplicate_member_names(agent_config):
    agent_config.cluster.nodes[1].name = "db1"
    with pytest.raises(ConfigError, match="duplicate"):
        validate_config(agent_config, logger, DEBIAN)


def test_validate_rejects_missing_repository_source(agent_config):
    agent_config.repositories.etcd.default = "mirror"
    with pytest.raises(ConfigError, match="etcd repositories not found"):
        validate_config(agent_config, logger, DEBIAN)


def test_validate_rejects_self_host_mismatch(agent_config):
    agent_config.cluster.nodes[0].host = "db1.internal"
    with pytest.raises(ConfigError, match="has host 'db1.internal' but node.host is '10.0.0.1'"):
        validate_config(agent_config, logger, DEBIAN)


def test_validated_config_advertises_its_initial_cluster_entry(agent_config):
    validate_config(agent_config, logger, DEBIAN)
    cmd = EtcdCommand.from_config(agent_config, select_transport("", "", "", logger))

    assert f"db1={cmd.advertise_peer_url}" in cmd.initial_cluster().split(",")
