# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/dbcp/install/etcd.py

from __future__ import annotations

import logging
import os
import shutil
import tarfile
from pathlib import Path
from typing import Optional

import requests

from ..config.models import AgentConfig
from ..errors import InstallError

log = logging.getLogger("dbcp")

ETCD_BINARIES = ("etcd", "etcdctl")


def release_name(version: str) -> str:
    return f"etcd-v{version}-linux-amd64"


def release_url(repo_url: str, version: str) -> str:
    return f"{repo_url.rstrip('/')}/v{version}/{release_name(version)}.tar.gz"


def _safe_extract(archive: Path, dest: Path) -> None:
    dest = dest.resolve()
    with tarfile.open(archive, "r:gz") as tar:
        members = []
        for m in tar.getmembers():
            target = (dest / m.name).resolve()
            if dest not in target.parents and target != dest:
                raise InstallError(f"refusing to extract {m.name!r} outside {dest}")
            if m.isfile() or m.isdir():
                members.append(m)
        tar.extractall(dest, members=members)


class EtcdInstaller:
    """
    Installs the etcd release tarball:
      - download <repo>/v<ver>/etcd-v<ver>-linux-amd64.tar.gz
      - extract under tmp_path
      - move etcd + etcdctl into bin_path (0755)
    """

    name = "etcd"

    def __init__(
        self,
        cfg: AgentConfig,
        *,
        logger: Optional[logging.Logger] = None,
        session: Optional[requests.Session] = None,
    ):
        self.cfg = cfg
        self.log = logger or log
        self.session = session or requests.Session()

    def _download(self, url: str, target: Path) -> None:
        self.log.info("Downloading etcd from %s", url)
        try:
            with self.session.get(url, stream=True, timeout=self.cfg.timeouts.download) as r:
                r.raise_for_status()
                with target.open("wb") as f:
                    for chunk in r.iter_content(chunk_size=1 << 16):
                        if chunk:
                            f.write(chunk)
        except requests.RequestException as exc:
            raise InstallError(f"failed to download etcd from {url}: {exc}") from exc
        except OSError as exc:
            raise InstallError(f"failed to write {target}: {exc}") from exc

    def install(self) -> None:
        etcd = self.cfg.node.etcd
        repo_url = self.cfg.repositories.etcd.selected().get("url")
        if not repo_url:
            raise InstallError(
                f"no url configured for etcd repository {self.cfg.repositories.etcd.default!r}"
            )

        self.log.info("Installing etcd version %s...", etcd.version)

        tmp = Path(self.cfg.node.tmp_path)
        tmp.mkdir(parents=True, exist_ok=True)
        archive = tmp / f"{release_name(etcd.version)}.tar.gz"
        self._download(release_url(repo_url, etcd.version), archive)

        extract_dir = tmp / f"etcd-v{etcd.version}"
        try:
            _safe_extract(archive, extract_dir)
        except (tarfile.TarError, OSError) as exc:
            raise InstallError(f"failed to extract etcd: {exc}") from exc

        bin_dir = Path(etcd.bin_path or "/usr/local/bin")
        try:
            bin_dir.mkdir(parents=True, exist_ok=True)
            for binary in ETCD_BINARIES:
                src = extract_dir / release_name(etcd.version) / binary
                dst = bin_dir / binary
                shutil.move(str(src), str(dst))
                os.chmod(dst, 0o755)
        except OSError as exc:
            raise InstallError(f"failed to install etcd binaries into {bin_dir}: {exc}") from exc

        self.log.info("etcd binaries installed to %s", bin_dir)
