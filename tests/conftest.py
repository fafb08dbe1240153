import copy
from pathlib import Path

import pytest
import yaml

from dbcp.config.models import AgentConfig


BASE = {
    "log_level": "debug",
    "node": {
        "name": "db1",
        "host": "10.0.0.1",
        "os_user": "postgres",
        "tmp_path": "/tmp/dbcp",
        "postgresql": {
            "version": "16",
            "data_dir": "/var/lib/postgresql/16/main",
            "bin_path": "/usr/lib/postgresql/16/bin",
            "users": {"admin": {"password": "adminpw", "options": ["createrole", "createdb"]}},
            "parameters": {"port": 5432, "max_connections": 200, "wal_level": "replica"},
            "initdb": [{"encoding": "UTF8"}, {"data-checksums": None}],
            "pg_hba": ["host replication replicator 0.0.0.0/0 md5", "host all all 0.0.0.0/0 md5"],
        },
        "etcd": {
            "version": "3.5.12",
            "data_dir": "/var/lib/etcd",
            "bin_path": "/usr/local/bin",
            "cluster_mode": "bootstrap",
        },
        "patroni": {
            "version": "3.3.0",
            "config_path": "/etc/patroni/patroni.yml",
            "authentication": {
                "superuser": {"username": "postgres", "password": "supersecret"},
                "replication": {"username": "replicator", "password": "replsecret"},
            },
        },
    },
    "cluster": {
        "name": "pg-ha",
        "nodes": [
            {"name": "db1", "host": "10.0.0.1"},
            {"name": "db2", "host": "10.0.0.2"},
            {"name": "db3", "host": "10.0.0.3"},
        ],
    },
    "repositories": {
        "postgresql": {
            "default": "official",
            "sources": {"official": {"debian": "http://apt.postgresql.org/pub/repos/apt",
                                     "rhel": "https://download.postgresql.org/pub/repos/yum"}},
        },
        "etcd": {
            "default": "official",
            "sources": {"official": {"url": "https://github.com/etcd-io/etcd/releases/download"}},
        },
    },
}


@pytest.fixture
def raw_config(tmp_path: Path) -> dict:
    """BASE with every filesystem path moved under tmp_path."""
    data = copy.deepcopy(BASE)
    node = data["node"]
    node["tmp_path"] = str(tmp_path / "tmp")
    node["postgresql"]["data_dir"] = str(tmp_path / "pgdata")
    node["etcd"]["data_dir"] = str(tmp_path / "etcd-data")
    node["etcd"]["bin_path"] = str(tmp_path / "bin")
    node["patroni"]["config_path"] = str(tmp_path / "patroni" / "patroni.yml")
    return data


@pytest.fixture
def agent_config(raw_config: dict) -> AgentConfig:
    return AgentConfig.model_validate(raw_config)


@pytest.fixture
def write_config(tmp_path: Path):
    def _write(data: dict, name: str = "agent-config.yaml") -> Path:
        p = tmp_path / name
        p.write_text(yaml.safe_dump(data))
        return p
    return _write


@pytest.fixture(autouse=True)
def no_chown(monkeypatch):
    """Tests never hand files to another OS user, even when run as root."""
    monkeypatch.setattr("dbcp.system.dirs.is_root", lambda: False)
    monkeypatch.setattr("dbcp.patroni.renderer.is_root", lambda: False)
