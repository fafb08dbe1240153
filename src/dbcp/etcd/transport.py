# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/dbcp/etcd/transport.py

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple

log = logging.getLogger("dbcp")


class TransportMode(str, Enum):
    PLAINTEXT = "plaintext"
    MUTUAL_TLS = "mutual_tls"


@dataclass(frozen=True)
class Transport:
    """
    One evaluation of the certificate material. The etcd command line, the
    health-probe client and etcdctl all read from the same instance.
    """
    mode: TransportMode
    cert_file: str = ""
    key_file: str = ""
    ca_file: str = ""
    server_args: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def scheme(self) -> str:
        return "https" if self.mode is TransportMode.MUTUAL_TLS else "http"

    def url(self, host: str, port: int) -> str:
        return f"{self.scheme}://{host}:{port}"

    def http_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for requests calls against an etcd client port."""
        if self.mode is TransportMode.MUTUAL_TLS:
            return {"verify": self.ca_file, "cert": (self.cert_file, self.key_file)}
        return {}

    def etcdctl_args(self) -> Tuple[str, ...]:
        if self.mode is TransportMode.MUTUAL_TLS:
            return ("--cacert", self.ca_file, "--cert", self.cert_file, "--key", self.key_file)
        return ()


def mutual_tls_args(cert_file: str, key_file: str, ca_file: str) -> Tuple[str, ...]:
    return (
        "--cert-file", cert_file,
        "--key-file", key_file,
        "--trusted-ca-file", ca_file,
        "--client-cert-auth=true",
        "--peer-cert-file", cert_file,
        "--peer-key-file", key_file,
        "--peer-trusted-ca-file", ca_file,
        "--peer-client-cert-auth=true",
    )


def select_transport(
    cert_file: Optional[str],
    key_file: Optional[str],
    ca_file: Optional[str],
    logger: Optional[logging.Logger] = None,
) -> Transport:
    """Mutual TLS only when cert, key and CA are all set; otherwise plaintext."""
    logger = logger or log
    material = {"cert_file": cert_file or "", "key_file": key_file or "", "ca_file": ca_file or ""}

    if all(material.values()):
        return Transport(
            mode=TransportMode.MUTUAL_TLS,
            server_args=mutual_tls_args(material["cert_file"], material["key_file"], material["ca_file"]),
            **material,
        )

    missing = [k for k, v in material.items() if not v]
    if len(missing) < len(material):
        logger.warning(
            "etcd TLS material incomplete (missing %s), falling back to plaintext",
            ", ".join(missing),
        )
    logger.warning("etcd is running without transport security (plaintext http)")
    return Transport(mode=TransportMode.PLAINTEXT, **material)
