"""Synchronous client for chrome-cli.

Finds (or starts) the background daemon through the liveness marker and
sends one HTTP request per command.
"""

from __future__ import annotations

import json
import subprocess
import sys
import time
from typing import Any

import httpx

from chrome_cli.config import DaemonConfig, load_config
from chrome_cli.errors import ChromeCliError
from chrome_cli.markers import cleanup_markers, is_daemon_running, read_port


def start_daemon(config: DaemonConfig) -> subprocess.Popen:
    """Launch the daemon as a detached subprocess.

    The daemon is launched by running::

        python -c "from chrome_cli.server import start_daemon; ..."

    stdout/stderr go to DEVNULL because the daemon logs to
    ``daemon.log`` in the config directory itself.
    """
    config_json = config.model_dump_json()
    return subprocess.Popen(
        [
            sys.executable,
            "-c",
            (
                "from chrome_cli.server import start_daemon; "
                f"start_daemon({config_json!r})"
            ),
        ],
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
        start_new_session=True,
    )


def ensure_daemon(config: DaemonConfig) -> int:
    """Return the port of a running daemon, starting one if necessary.

    Waits at most ``config.startup_delay`` seconds for a freshly spawned
    daemon to record its liveness marker.  Raises ``ChromeCliError`` if it
    still isn't running afterwards.
    """
    if is_daemon_running(config.config_dir):
        return read_port(config.port, config.config_dir)

    # Stale marker from a daemon that died without cleaning up.
    cleanup_markers(config.config_dir)

    proc = start_daemon(config)
    deadline = time.monotonic() + config.startup_delay
    while time.monotonic() < deadline:
        if is_daemon_running(config.config_dir):
            break
        if proc.poll() is not None:
            break
        time.sleep(0.1)

    if not is_daemon_running(config.config_dir):
        raise ChromeCliError(
            "Failed to start daemon. Check the log in "
            f"{config.config_dir}/daemon.log"
        )
    return read_port(config.port, config.config_dir)


def _base_url(config: DaemonConfig, port: int) -> str:
    host = "127.0.0.1" if config.host in ("0.0.0.0", "") else config.host
    return f"http://{host}:{port}"


def call_daemon(
    method: str,
    path: str,
    body: dict[str, Any] | None = None,
    params: dict[str, Any] | None = None,
    config: DaemonConfig | None = None,
    timeout: float = 120.0,
) -> dict[str, Any]:
    """Send one command to the daemon and return its JSON response.

    Starts the daemon first if none is running.  Transport failures raise
    ``httpx.HTTPError``; command failures come back as
    ``{"success": False, "error": ...}``.
    """
    config = config or load_config()
    port = ensure_daemon(config)
    url = f"{_base_url(config, port)}{path}"
    if params:
        params = {k: v for k, v in params.items() if v is not None}
    response = httpx.request(
        method,
        url,
        json=body if method.upper() != "GET" else None,
        params=params or None,
        timeout=timeout,
    )
    try:
        return response.json()
    except json.JSONDecodeError:
        return {
            "success": False,
            "error": f"Unexpected response ({response.status_code}): {response.text}",
        }


def daemon_status(config: DaemonConfig | None = None) -> dict[str, Any]:
    """Query ``/health`` without starting a daemon."""
    config = config or load_config()
    if not is_daemon_running(config.config_dir):
        return {"success": False, "status": "Daemon not running"}
    return call_daemon("GET", "/health", config=config)


def stop_daemon(config: DaemonConfig | None = None) -> dict[str, Any]:
    """Ask a running daemon to shut down; never starts one."""
    config = config or load_config()
    if not is_daemon_running(config.config_dir):
        cleanup_markers(config.config_dir)
        return {"success": True, "message": "Daemon not running"}
    return call_daemon("POST", "/shutdown", config=config)
