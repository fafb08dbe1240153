# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/dbcp/errors.py

from __future__ import annotations

from typing import Sequence


class DbcpError(RuntimeError):
    """Base class for agent failures."""


class ConfigError(DbcpError):
    """Configuration is missing, malformed or inconsistent."""


class CommandError(DbcpError):
    """An external command exited non-zero or could not be executed."""

    def __init__(self, argv: Sequence[str], returncode: int | None, output: str = ""):
        self.argv = list(argv)
        self.returncode = returncode
        self.output = output
        msg = f"command failed (rc={returncode}): {' '.join(self.argv)}"
        if output.strip():
            msg += f"\n{output.strip()}"
        super().__init__(msg)


class InstallError(DbcpError):
    """A service could not be downloaded or installed."""


class FormationError(DbcpError):
    """etcd cluster formation failed."""


class NoHealthyPeerError(FormationError):
    """Join mode exhausted every candidate peer without a healthy answer."""


class MemberRegistrationError(FormationError):
    """`etcdctl member add` was rejected by the discovered peer."""

    def __init__(self, message: str, output: str = ""):
        self.output = output
        super().__init__(f"{message}\n{output.strip()}" if output.strip() else message)


class RenderError(DbcpError):
    """The Patroni configuration could not be rendered or written."""


class LaunchError(DbcpError):
    """A long-running child process could not be started."""


class StageError(DbcpError):
    """A startup stage failed; names the stage and the sub-operation."""

    def __init__(self, stage: str, operation: str, cause: BaseException):
        self.stage = stage
        self.operation = operation
        self.cause = cause
        super().__init__(f"[{stage}] {operation} failed: {cause}")
