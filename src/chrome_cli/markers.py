"""Liveness marker management for chrome-cli.

The daemon records its PID and listening port under ``~/.chrome-cli/`` so
that independent front-end invocations can find it instead of spawning a
second one.

Directory layout (per-user, persists across invocations):

    ~/.chrome-cli/
      daemon.pid        # Daemon PID
      daemon.port       # Listening port
      daemon.log        # Daemon log (overwritten on each start)
      chrome-profile/   # Isolated Chrome profile, created on demand
      screenshot-2026-02-14T19-22-42.123.png
"""

from __future__ import annotations

import os
from datetime import datetime, timezone
from pathlib import Path

# ---------------------------------------------------------------------------
# Directory helpers
# ---------------------------------------------------------------------------

_BASE_DIR_NAME = ".chrome-cli"
_PID_FILENAME = "daemon.pid"
_PORT_FILENAME = "daemon.port"
_LOG_FILENAME = "daemon.log"


def get_config_dir(config_dir: str | Path | None = None) -> Path:
    """Return the daemon config directory, creating it if it does not exist.

    Defaults to ``~/.chrome-cli/``.
    """
    path = Path(config_dir) if config_dir else Path.home() / _BASE_DIR_NAME
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_pid_path(config_dir: str | Path | None = None) -> Path:
    """Return the PID file path."""
    return get_config_dir(config_dir) / _PID_FILENAME


def get_port_path(config_dir: str | Path | None = None) -> Path:
    """Return the port file path."""
    return get_config_dir(config_dir) / _PORT_FILENAME


def get_log_path(config_dir: str | Path | None = None) -> Path:
    """Return the daemon log file path."""
    return get_config_dir(config_dir) / _LOG_FILENAME


# ---------------------------------------------------------------------------
# PID / port management
# ---------------------------------------------------------------------------


def write_markers(pid: int, port: int, config_dir: str | Path | None = None) -> None:
    """Persist the daemon's *pid* and listening *port*."""
    get_pid_path(config_dir).write_text(str(pid), encoding="utf-8")
    get_port_path(config_dir).write_text(str(port), encoding="utf-8")


def _read_int(path: Path) -> int | None:
    try:
        text = path.read_text(encoding="utf-8").strip()
        if not text:
            return None
        return int(text)
    except (FileNotFoundError, ValueError):
        return None


def read_pid(config_dir: str | Path | None = None) -> int | None:
    """Read the daemon PID.

    Returns ``None`` if the file is missing, empty, or contains non-integer
    content.
    """
    return _read_int(get_pid_path(config_dir))


def read_port(default: int, config_dir: str | Path | None = None) -> int:
    """Read the daemon port, falling back to *default* when unrecorded."""
    port = _read_int(get_port_path(config_dir))
    return default if port is None else port


def is_daemon_running(config_dir: str | Path | None = None) -> bool:
    """Return ``True`` if the recorded daemon process is still running.

    Uses ``os.kill(pid, 0)`` which checks for process existence without
    sending a signal.  A missing PID file or a dead process both mean
    "not running".
    """
    pid = read_pid(config_dir)
    if pid is None:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # Process exists but we lack permission to signal it.
        return True
    return True


def cleanup_markers(config_dir: str | Path | None = None) -> None:
    """Remove the PID and port files.

    The config directory itself (log, isolated profile, screenshots) is
    left intact.
    """
    for path in (get_pid_path(config_dir), get_port_path(config_dir)):
        try:
            path.unlink()
        except FileNotFoundError:
            pass


# ---------------------------------------------------------------------------
# Output filenames
# ---------------------------------------------------------------------------


def generate_output_filename(
    prefix: str, ext: str, config_dir: str | Path | None = None
) -> Path:
    """Generate a timestamped output file path under the config directory.

    Returns a ``Path`` of the form::

        ~/.chrome-cli/{prefix}-{ISO timestamp}.{ext}

    Colons are replaced with dashes so the name is safe on filesystems that
    disallow them.  Milliseconds are kept so that back-to-back captures do
    not collide.
    """
    now = datetime.now(timezone.utc)
    timestamp = now.isoformat(timespec="milliseconds").replace(":", "-")
    timestamp = timestamp.replace("+00-00", "Z")
    return get_config_dir(config_dir) / f"{prefix}-{timestamp}.{ext}"
