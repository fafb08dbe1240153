# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/dbcp/logging/log.py

from __future__ import annotations

import gzip
import logging
import os
import re
import shutil
import sys
import time
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, TextIO

from ..config.models import LogSettings

LEVELS = {
    "error": logging.ERROR,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
}


def parse_level(level: Optional[str]) -> int:
    """Unknown or empty level names fall back to INFO."""
    return LEVELS.get((level or "").strip().lower(), logging.INFO)


def gzip_namer(name: str) -> str:
    return name + ".gz"


def gzip_rotator(source: str, dest: str) -> None:
    """Compress the closed log file into *dest* and drop the original."""
    with open(source, "rb") as src, gzip.open(dest, "wb") as dst:
        shutil.copyfileobj(src, dst)
    os.remove(source)


def prune_old_backups(log_path: Path, max_age_days: int) -> list[Path]:
    """Delete rotated backups (``<file>.N`` or ``<file>.N.gz``) older than *max_age_days*."""
    if max_age_days <= 0:
        return []
    cutoff = time.time() - max_age_days * 86400
    backup = re.compile(re.escape(log_path.name) + r"\.\d+(\.gz)?")
    removed = []
    for p in sorted(log_path.parent.glob(f"{log_path.name}.*")):
        if backup.fullmatch(p.name) and p.stat().st_mtime < cutoff:
            p.unlink()
            removed.append(p)
    return removed


def init_logging(
    settings: LogSettings,
    *,
    name: str = "dbcp",
    stream: Optional[TextIO] = None,
) -> logging.Logger:
    """
    Build the agent's logger handle.

    - output "stdout": one StreamHandler
    - output "file": size-based RotatingFileHandler (max_size_mb / max_backups),
      backups older than max_age_days are pruned at start-up
    - compress: rotated backups are gzipped to ``<file>.N.gz``

    The handle is returned and handed to each component; nothing else reads
    module-level logging state.
    """
    logger = logging.getLogger(name)
    logger.setLevel(parse_level(settings.level))
    for h in list(logger.handlers):
        logger.removeHandler(h)
        h.close()
    logger.propagate = False

    formatter = logging.Formatter(
        "%(asctime)s | %(levelname)-7s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    if settings.output == "file" and settings.file_path:
        log_path = Path(settings.file_path)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handler: logging.Handler = RotatingFileHandler(
            log_path,
            maxBytes=max(settings.max_size_mb, 0) * 1024 * 1024,
            backupCount=max(settings.max_backups, 0),
            encoding="utf-8",
        )
        if settings.compress:
            handler.namer = gzip_namer
            handler.rotator = gzip_rotator
        removed = prune_old_backups(log_path, settings.max_age_days)
    else:
        handler = logging.StreamHandler(stream or sys.stdout)
        removed = []

    handler.setFormatter(formatter)
    logger.addHandler(handler)

    for p in removed:
        logger.debug("Pruned old log backup %s", p)
    return logger
