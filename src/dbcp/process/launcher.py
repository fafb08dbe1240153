# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/dbcp/process/launcher.py

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import Optional, Protocol, Sequence

from ..errors import LaunchError

log = logging.getLogger("dbcp")


class ProcessHandle(Protocol):
    def pid(self) -> int: ...
    def wait(self, timeout: Optional[float] = None) -> int: ...


class ProcessLauncher(Protocol):
    def launch(self, binary: str, args: Sequence[str], log_file: str | Path) -> ProcessHandle: ...


class PopenHandle:
    """Opaque handle over a started child."""

    def __init__(self, proc: subprocess.Popen):
        self._proc = proc

    def pid(self) -> int:
        return self._proc.pid

    def wait(self, timeout: Optional[float] = None) -> int:
        return self._proc.wait(timeout=timeout)


class DetachedLauncher:
    """
    Starts long-running children that outlive the agent:
      - stdout + stderr appended to one log file
      - new session, so a signal to the agent's group does not reach them
      - never waits for exit
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.log = logger or log

    def launch(self, binary: str, args: Sequence[str], log_file: str | Path) -> PopenHandle:
        log_path = Path(log_file)
        argv = [str(binary), *[str(a) for a in args]]

        try:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            out = open(log_path, "ab")
        except OSError as exc:
            raise LaunchError(f"failed to open log file {log_path}: {exc}") from exc

        try:
            proc = subprocess.Popen(
                argv,
                stdin=subprocess.DEVNULL,
                stdout=out,
                stderr=subprocess.STDOUT,
                start_new_session=True,
                close_fds=True,
            )
        except OSError as exc:
            raise LaunchError(f"failed to start {binary}: {exc}") from exc
        finally:
            # the child holds its own descriptor
            out.close()

        self.log.info("Started %s with PID %d, logs at %s", Path(binary).name, proc.pid, log_path)
        return PopenHandle(proc)
