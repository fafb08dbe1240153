# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/dbcp/patroni/renderer.py

from __future__ import annotations

import logging
import os
import re
import shutil
from pathlib import Path
from typing import Any, Dict, List, Optional

from jinja2 import Environment, FileSystemLoader, StrictUndefined, TemplateError

from ..config.models import AgentConfig
from ..errors import RenderError
from ..etcd.transport import Transport, TransportMode
from ..system.dirs import is_root

log = logging.getLogger("dbcp")

DEFAULT_TEMPLATE = Path(__file__).resolve().parent / "templates" / "patroni.yml.j2"


def expand_env_vars(value: str) -> str:
    return re.sub(r"\$\{([^}^{]+)\}", lambda m: os.getenv(m.group(1), m.group(0)), value)


def initdb_steps(items: List[Dict[str, Optional[str]]]) -> List[str]:
    """``{"encoding": "UTF8"}`` -> ``encoding: UTF8``; empty value -> bare flag."""
    steps = []
    for item in items:
        for key, value in item.items():
            steps.append(key if value in (None, "") else f"{key}: {value}")
    return steps


class ConfigRenderer:
    """
    Renders patroni.yml from the node / cluster / credentials record.

    The etcd endpoints use the same Transport the etcd process was started
    with, so Patroni talks to etcd with the scheme etcd actually serves.
    """

    def __init__(
        self,
        cfg: AgentConfig,
        transport: Transport,
        *,
        template_path: Optional[str | Path] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.cfg = cfg
        self.transport = transport
        self.template_path = Path(template_path or cfg.node.patroni.template_path or DEFAULT_TEMPLATE)
        self.log = logger or log

    def context(self) -> Dict[str, Any]:
        node = self.cfg.node
        pg = node.postgresql
        patroni = node.patroni

        ctx: Dict[str, Any] = {
            "cluster": self.cfg.cluster,
            "node": node,
            "host": node.host,
            "namespace": patroni.namespace,
            "api_listen": patroni.api_listen,
            "api_port": patroni.port,
            "etcd_hosts": [f"{m.host}:{node.etcd.client_port}" for m in self.cfg.topology().members],
            "etcd_protocol": self.transport.scheme,
            "etcd_tls": None,
            "pg_port": pg.parameters.port,
            "pg_data_dir": pg.data_dir,
            "pg_bin_dir": pg.bin_path,
            "pg_users": pg.users,
            "superuser": patroni.authentication.superuser,
            "replication": patroni.authentication.replication,
            "initdb": initdb_steps(pg.initdb),
            "pg_hba": pg.pg_hba,
            "use_pg_rewind": pg.parameters.use_pg_rewind,
            "use_slots": pg.parameters.use_slots,
            "dcs": patroni.dcs,
            "parameters": pg.parameters.passthrough(),
            "create_replica_methods": patroni.create_replica_methods,
            "tags": patroni.tags,
        }
        if self.transport.mode is TransportMode.MUTUAL_TLS:
            ctx["etcd_tls"] = {
                "cacert": self.transport.ca_file,
                "cert": self.transport.cert_file,
                "key": self.transport.key_file,
            }
        return {k: expand_env_vars(v) if isinstance(v, str) else v for k, v in ctx.items()}

    def render_text(self) -> str:
        if not self.template_path.is_file():
            raise RenderError(f"patroni template not found: {self.template_path}")
        self.log.debug("Template path: %s", self.template_path)

        env = Environment(
            loader=FileSystemLoader(str(self.template_path.parent)),
            autoescape=False,
            undefined=StrictUndefined,
        )
        try:
            tmpl = env.get_template(self.template_path.name)
            return tmpl.render(**self.context())
        except TemplateError as exc:
            raise RenderError(f"failed to render {self.template_path}: {exc}") from exc

    def render(self) -> Path:
        """Render and write the config; returns the written path."""
        text = self.render_text()
        target = Path(self.cfg.node.patroni.config_path)
        try:
            target.parent.mkdir(mode=0o755, parents=True, exist_ok=True)
            target.write_text(text + "\n", encoding="utf-8")
            # credentials inside: owner + group only
            os.chmod(target, 0o640)
            if is_root():
                shutil.chown(target, user=self.cfg.node.os_user)
        except (OSError, LookupError) as exc:
            raise RenderError(f"failed to write patroni config {target}: {exc}") from exc

        self.log.info("Patroni configuration written to %s", target)
        return target
