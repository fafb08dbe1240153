# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/dbcp/observers/dispatcher.py
from __future__ import annotations
import logging
from typing import List, Optional
from .events import BaseEvent
from .interface import Observer

log = logging.getLogger("dbcp")


class EventBus:
    def __init__(self, observers: Optional[List[Observer]] = None, logger: Optional[logging.Logger] = None):
        self._observers = observers or []
        self.log = logger or log

    def emit(self, event: BaseEvent) -> None:
        for ob in self._observers:
            try:
                ob.notify(event)
            except Exception as exc:  # observers must not break the bring-up
                self.log.debug("observer %s failed: %s", ob.__class__.__name__, exc)
