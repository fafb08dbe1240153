# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/dbcp/cli/app.py
from __future__ import annotations

import logging
import signal
import threading
from pathlib import Path
from typing import List, Optional, Tuple

import typer

from dbcp.agent.sequencer import StartupSequencer
from dbcp.config.loader import load_config, validate_config
from dbcp.config.models import AgentConfig
from dbcp.errors import DbcpError
from dbcp.install.gate import InstallGate, service_specs
from dbcp.logging.log import init_logging
from dbcp.observers.dispatcher import EventBus
from dbcp.observers.interface import Observer
from dbcp.observers.jsonfile import JsonFileObserver
from dbcp.observers.logger import LoggerObserver
from dbcp.system.os_info import OSInfo, detect_os


# ------------------------------------------------------------------------------
# CLI setup
# ------------------------------------------------------------------------------

app = typer.Typer(help="PostgreSQL HA node agent (etcd + Patroni)")

EVENTS_FILE = "dbcp-events.jsonl"


# ------------------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------------------

def _detect_os(logger: logging.Logger) -> OSInfo:
    try:
        info = detect_os()
    except OSError as exc:
        logger.warning("Could not read /etc/os-release (%s); OS family unknown", exc)
        return OSInfo()
    logger.info("Detected OS: %s", info.pretty or info.id or "unknown")
    return info


def _prepare(config: Path) -> Tuple[AgentConfig, logging.Logger, OSInfo]:
    """Load config, build the logger from it, then run semantic validation."""
    cfg = load_config(config)
    logger = init_logging(cfg.log_settings())
    logger.info("Loaded configuration from %s", config)
    os_info = _detect_os(logger)
    validate_config(cfg, logger, os_info)
    return cfg, logger, os_info


def _build_bus(cfg: AgentConfig, logger: logging.Logger) -> EventBus:
    observers: List[Observer] = [LoggerObserver(logger)]
    events_path = Path(cfg.node.tmp_path) / EVENTS_FILE
    try:
        observers.append(JsonFileObserver(events_path))
    except OSError as exc:
        logger.warning("Lifecycle events will not be written to %s: %s", events_path, exc)
    return EventBus(observers=observers, logger=logger)


def install_shutdown_handlers(logger: logging.Logger) -> threading.Event:
    """
    Route SIGINT and SIGTERM into an Event. Installed before bring-up so a
    signal only gets recorded; the external command in flight finishes and
    the agent acts on the request once the sequence is over.
    """
    stop = threading.Event()

    def _handler(signum, _frame):
        logger.info("Received %s, agent will stop after the current step", signal.Signals(signum).name)
        stop.set()

    signal.signal(signal.SIGINT, _handler)
    signal.signal(signal.SIGTERM, _handler)
    return stop


def wait_for_shutdown(logger: logging.Logger, stop: threading.Event) -> None:
    """
    Block until SIGINT or SIGTERM. Children started during bring-up run in
    their own sessions and are left running.
    """
    if stop.is_set():
        return
    logger.info("Agent is running. Press Ctrl+C to exit.")
    while not stop.wait(1.0):
        pass


def _fail(logger: Optional[logging.Logger], exc: DbcpError) -> None:
    if logger is not None:
        logger.error("%s", exc)
    else:
        typer.echo(f"ERROR: {exc}", err=True)
    raise typer.Exit(code=1)


# ------------------------------------------------------------------------------
# Commands
# ------------------------------------------------------------------------------

@app.command()
def run(
    config: Path = typer.Option(..., "--config", "-c", help="Path to the agent YAML config"),
    daemon: bool = typer.Option(
        True,
        "--daemon/--once",
        help="Stay in the foreground after bring-up until SIGINT/SIGTERM",
    ),
):
    """
    Bring this node up: install, form or join etcd, render and start Patroni.
    """
    logger: Optional[logging.Logger] = None
    try:
        cfg, logger, os_info = _prepare(config)
        logger.info("Starting agent for node %s in cluster %s", cfg.node.name, cfg.cluster.name)
        stop = install_shutdown_handlers(logger)

        sequencer = StartupSequencer.from_config(
            cfg,
            os_info=os_info,
            logger=logger,
            bus=_build_bus(cfg, logger),
        )
        report = sequencer.bootstrap()
    except DbcpError as exc:
        _fail(logger, exc)
        return

    for warning in report.warnings:
        logger.warning("Completed with warning: %s", warning)

    if stop.is_set():
        logger.info("Shutdown requested during bring-up, not waiting")
    elif daemon:
        wait_for_shutdown(logger, stop)
    logger.info("Agent finished successfully.")


@app.command()
def validate(
    config: Path = typer.Option(..., "--config", "-c", help="Path to the agent YAML config"),
):
    """Load and validate the config, then print a summary."""
    logger: Optional[logging.Logger] = None
    try:
        cfg, logger, _ = _prepare(config)
    except DbcpError as exc:
        _fail(logger, exc)
        return

    topology = cfg.topology()
    typer.echo(f"cluster:   {topology.cluster_name}")
    typer.echo(f"node:      {cfg.node.name} ({cfg.node.host})")
    typer.echo(f"formation: {cfg.formation_mode().value}")
    typer.echo(f"members:   {', '.join(f'{m.name}={m.host}' for m in topology.members)}")
    typer.echo(f"patroni:   {cfg.node.patroni.config_path}")
    typer.echo("Configuration is valid.")


@app.command("check-install")
def check_install(
    config: Path = typer.Option(..., "--config", "-c", help="Path to the agent YAML config"),
):
    """Report, per managed service, whether installation would run."""
    logger: Optional[logging.Logger] = None
    try:
        cfg, logger, _ = _prepare(config)
        gate = InstallGate(
            service_specs(cfg).values(),
            probe_timeout=cfg.timeouts.version_probe,
            logger=logger,
        )
        for name, spec in gate.specs.items():
            state = "installed" if gate.is_installed(name) else "install required"
            typer.echo(f"{name:<12} {spec.expected_version:<10} {state}")
    except DbcpError as exc:
        _fail(logger, exc)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
