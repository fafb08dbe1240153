# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations
from typing import Protocol


class ServiceInstaller(Protocol):
    name: str

    def install(self) -> None:
        """Install the service or raise InstallError."""
        ...
