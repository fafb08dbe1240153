# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/dbcp/observers/logger.py

from __future__ import annotations
import logging
from .events import BaseEvent

# run context is already on every log line or in the JSONL file
_CONTEXT_FIELDS = ("ts", "run_id", "cluster", "node")


class LoggerObserver:
    def __init__(self, logger: logging.Logger):
        self.logger = logger

    def notify(self, event: BaseEvent) -> None:
        fields = ", ".join(
            f"{k}={v}" for k, v in event.dict().items() if k not in _CONTEXT_FIELDS
        )
        self.logger.debug("[EVENT] %s: %s", type(event).__name__, fields)
