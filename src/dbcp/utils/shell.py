# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/dbcp/utils/shell.py

from __future__ import annotations

import logging
import subprocess
import time
from pathlib import Path
from typing import Optional, Sequence

from ..errors import CommandError


def run_logged(
    cmd: Sequence[str],
    *,
    logger: logging.Logger,
    label: str,
    timeout: float,
    env: Optional[dict] = None,
    cwd: Optional[Path] = None,
    check: bool = True,
    merge_stderr: bool = True,
) -> subprocess.CompletedProcess:
    """
    Execute a local command with logging.

    - Logs the command at debug and every output line at debug
    - With merge_stderr, stderr is interleaved into stdout (combined output)
    - Raises CommandError on non-zero exit (when check), on timeout and
      when the executable cannot be started
    - The child runs in its own session, so a signal aimed at the agent's
      process group does not interrupt it
    """
    argv = [str(c) for c in cmd]
    logger.debug("[%s] $ %s", label, " ".join(argv))

    start = time.time()
    try:
        cp = subprocess.run(
            argv,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT if merge_stderr else subprocess.PIPE,
            text=True,
            env=env,
            cwd=str(cwd) if cwd else None,
            timeout=timeout,
            check=False,
            start_new_session=True,
        )
    except subprocess.TimeoutExpired as exc:
        raise CommandError(argv, None, f"timed out after {timeout}s") from exc
    except OSError as exc:
        raise CommandError(argv, None, str(exc)) from exc

    for line in (cp.stdout or "").splitlines():
        logger.debug("[%s] %s", label, line.rstrip())
    if not merge_stderr:
        for line in (cp.stderr or "").splitlines():
            logger.debug("[%s][stderr] %s", label, line.rstrip())

    elapsed = round(time.time() - start, 2)

    if check and cp.returncode != 0:
        output = cp.stdout or ""
        if not merge_stderr and cp.stderr:
            output += cp.stderr
        raise CommandError(argv, cp.returncode, output)

    logger.debug("[%s] exited rc=%s in %ss", label, cp.returncode, elapsed)
    return cp


def run_shell(
    command: str,
    *,
    logger: logging.Logger,
    label: str,
    timeout: float,
) -> subprocess.CompletedProcess:
    """Run a shell pipeline through ``bash -c`` (package-manager recipes)."""
    return run_logged(["bash", "-c", command], logger=logger, label=label, timeout=timeout)
