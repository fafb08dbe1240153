import logging

import pytest

from dbcp.etcd.command import STATE_EXISTING, STATE_NEW, EtcdCommand
from dbcp.etcd.transport import select_transport

logger = logging.getLogger("dbcp-test")


def _argv_value(argv, flag):
    return argv[argv.index(flag) + 1]


def test_initial_cluster_includes_every_member(agent_config):
    cmd = EtcdCommand.from_config(agent_config, select_transport("", "", "", logger))
    assert cmd.initial_cluster() == (
        "db1=http://10.0.0.1:2380,db2=http://10.0.0.2:2380,db3=http://10.0.0.3:2380"
    )


def test_server_args_plaintext(agent_config):
    cmd = EtcdCommand.from_config(agent_config, select_transport("", "", "", logger))
    argv = cmd.server_args(STATE_NEW)

    assert _argv_value(argv, "--name") == "db1"
    assert _argv_value(argv, "--data-dir") == agent_config.node.etcd.data_dir
    assert _argv_value(argv, "--initial-cluster-state") == "new"
    assert "--initial-advertise-peer-urls=http://10.0.0.1:2380" in argv
    assert "--listen-peer-urls=http://0.0.0.0:2380" in argv
    assert "--listen-client-urls=http://0.0.0.0:2379" in argv
    assert "--advertise-client-urls=http://10.0.0.1:2379" in argv
    assert not any(a.startswith("--cert-file") or a == "--cert-file" for a in argv)


def test_server_args_mutual_tls(agent_config):
    cmd = EtcdCommand.from_config(agent_config, select_transport("/c.crt", "/c.key", "/ca.crt", logger))
    argv = cmd.server_args(STATE_EXISTING)

    assert argv[:8] == list(cmd.transport.server_args[:8])
    assert _argv_value(argv, "--initial-cluster-state") == "existing"
    assert "db2=https://10.0.0.2:2380" in _argv_value(argv, "--initial-cluster")
    assert "--advertise-client-urls=https://10.0.0.1:2379" in argv


def test_server_args_rejects_unknown_state(agent_config):
    cmd = EtcdCommand.from_config(agent_config, select_transport("", "", "", logger))
    with pytest.raises(ValueError):
        cmd.server_args("recover")


def test_member_add_argv(agent_config):
    cmd = EtcdCommand.from_config(agent_config, select_transport("/c.crt", "/c.key", "/ca.crt", logger))
    argv = cmd.member_add_argv("https://10.0.0.2:2379")

    assert argv[0].endswith("/etcdctl")
    assert argv[1] == "--endpoints=https://10.0.0.2:2379"
    assert argv[2:8] == ["--cacert", "/ca.crt", "--cert", "/c.crt", "--key", "/c.key"]
    assert argv[8:] == ["member", "add", "db1", "--peer-urls=https://10.0.0.1:2380"]
