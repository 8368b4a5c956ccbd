"""Daemon entry point for chrome-cli.

Serves the FastAPI app from ``app.py`` with uvicorn on a local port.  The
daemon is started as a detached background process by ``client.ensure_daemon``
and records its PID and port (the liveness marker) once it is listening.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import sys
from typing import Any

import uvicorn
from pydantic import ValidationError

from chrome_cli.app import create_app
from chrome_cli.browser import check_browser_available
from chrome_cli.config import DaemonConfig, load_config
from chrome_cli.errors import StartupError
from chrome_cli.handlers import Session
from chrome_cli.markers import cleanup_markers, get_log_path, write_markers

logger = logging.getLogger("chrome_cli.server")

_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
_LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


async def _write_markers_when_listening(
    server: uvicorn.Server, serve_task: asyncio.Task, config: DaemonConfig
) -> None:
    while not server.started:
        if serve_task.done():
            return
        await asyncio.sleep(0.05)
    write_markers(os.getpid(), config.port, config.config_dir)
    logger.info(f"Daemon listening on http://{config.host}:{config.port} (pid={os.getpid()})")


async def run_server(config: DaemonConfig) -> None:
    """Main daemon coroutine. Creates the Session and serves until shutdown."""
    check_browser_available(config)

    session = Session(config)
    app = create_app(session)
    server = uvicorn.Server(
        uvicorn.Config(
            app,
            host=config.host,
            port=config.port,
            log_config=None,
            log_level=config.log_level.lower(),
            access_log=False,
        )
    )

    def _request_exit() -> None:
        logger.info("Stopping HTTP listener")
        server.should_exit = True

    session.request_exit = _request_exit

    serve_task = asyncio.create_task(server.serve())
    try:
        await _write_markers_when_listening(server, serve_task, config)
        await serve_task
    finally:
        logger.info("Server stopped, cleaning up liveness marker")
        cleanup_markers(config.config_dir)


def _setup_logging(config: DaemonConfig) -> None:
    """Configure logging for the detached daemon process.

    Writes to ``~/.chrome-cli/daemon.log`` (truncated on each start).  Also
    redirects *stdout*/*stderr* so that stray ``print()`` calls or unhandled
    tracebacks land in the same file.
    """
    log_path = get_log_path(config.config_dir)
    handler = logging.FileHandler(log_path, mode="w", encoding="utf-8")
    handler.setFormatter(logging.Formatter(_LOG_FORMAT, datefmt=_LOG_DATEFMT))
    root = logging.getLogger()
    root.setLevel(config.log_level)
    root.addHandler(handler)

    sys.stdout = open(log_path, "a", encoding="utf-8")  # noqa: SIM115
    sys.stderr = sys.stdout


def _run(config: DaemonConfig) -> int:
    try:
        asyncio.run(run_server(config))
    except StartupError as exc:
        logger.error(f"Daemon failed to start: {exc}")
        print(f"chrome-cli daemon: {exc}", file=sys.__stderr__)
        return 1
    except Exception:
        logger.exception("Daemon crashed")
        raise
    return 0


def start_daemon(config_dict: dict[str, Any] | str) -> None:
    """Entry point for the detached daemon subprocess. Called by client.py."""
    parsed: dict[str, Any] = (
        json.loads(config_dict) if isinstance(config_dict, str) else config_dict
    )
    try:
        config = DaemonConfig(**parsed)
    except ValidationError as exc:
        print(f"chrome-cli daemon: invalid configuration: {exc}", file=sys.stderr)
        sys.exit(1)
    _setup_logging(config)
    logger.info(f"Daemon starting (pid={os.getpid()})")
    sys.exit(_run(config))


def main(config_path: str | None = None) -> None:
    """Run the daemon in the foreground, logging to the console."""
    try:
        config = load_config(config_path)
    except (ValidationError, ValueError) as exc:
        print(f"chrome-cli daemon: invalid configuration: {exc}", file=sys.stderr)
        sys.exit(1)
    logging.basicConfig(level=config.log_level, format=_LOG_FORMAT, datefmt=_LOG_DATEFMT)
    sys.exit(_run(config))


if __name__ == "__main__":
    main()
