# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/dbcp/system/dirs.py

from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path
from typing import Iterable, List, Optional

from ..errors import ConfigError

log = logging.getLogger("dbcp")


def is_root() -> bool:
    return hasattr(os, "geteuid") and os.geteuid() == 0


def chown_tree(path: str | Path, username: str) -> None:
    """Hand *path* and everything below it to *username*."""
    p = Path(path)
    shutil.chown(p, user=username)
    for root, dirs, files in os.walk(p):
        for name in dirs + files:
            shutil.chown(os.path.join(root, name), user=username)


def create_dirs(
    paths: Iterable[str | Path],
    *,
    logger: Optional[logging.Logger] = None,
    mode: int = 0o755,
) -> List[Path]:
    """
    mkdir -p for each non-empty path. Ownership is left alone: the service
    user may not exist until its package is installed.
    """
    logger = logger or log
    created = []
    for path in paths:
        if not str(path):
            continue
        p = Path(path).absolute()
        p.mkdir(mode=mode, parents=True, exist_ok=True)
        logger.info("Ensured directory exists: %s", p)
        created.append(p)
    return created


def hand_over_dirs(
    paths: Iterable[str | Path],
    *,
    owner: str,
    logger: Optional[logging.Logger] = None,
) -> List[Path]:
    """
    chown -R each existing path to *owner*. Only root can do this; for any
    other user it is a no-op.
    """
    logger = logger or log
    if not is_root():
        logger.debug("Not running as root, leaving directory ownership unchanged")
        return []

    changed = []
    for path in paths:
        if not str(path) or not Path(path).exists():
            continue
        try:
            chown_tree(path, owner)
        except LookupError as exc:
            raise ConfigError(f"node.os_user {owner!r} does not exist on this host") from exc
        logger.info("Handed %s to %s", path, owner)
        changed.append(Path(path))
    return changed


def tighten_permissions(path: str | Path, mode: int = 0o700) -> None:
    os.chmod(path, mode)
