"""Argparse-based CLI for chrome-cli.

Each subcommand maps onto one daemon endpoint; the daemon is started on
demand.  Responses are printed as indented JSON.
"""

from __future__ import annotations

import argparse
import json
import sys
from typing import Any

import httpx

from chrome_cli.client import call_daemon, daemon_status, ensure_daemon, stop_daemon
from chrome_cli.config import DaemonConfig, get_version, load_config
from chrome_cli.errors import ChromeCliError

# command -> (HTTP method, path)
_ROUTES: dict[str, tuple[str, str]] = {
    "navigate": ("POST", "/navigate"),
    "screenshot": ("POST", "/screenshot"),
    "click": ("POST", "/click"),
    "fill": ("POST", "/fill"),
    "eval": ("POST", "/evaluate"),
    "console": ("GET", "/console"),
    "network": ("GET", "/network"),
    "pages": ("GET", "/pages"),
    "new-page": ("POST", "/new-page"),
    "select-page": ("POST", "/select-page"),
    "close-page": ("POST", "/close-page"),
    "wait": ("POST", "/wait"),
    "snapshot": ("POST", "/snapshot"),
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _output(data: Any) -> None:
    print(json.dumps(data, indent=2))


def build_request(args: argparse.Namespace) -> tuple[dict | None, dict | None]:
    """Return ``(json_body, query_params)`` for the parsed *args*."""
    cmd = args.command
    if cmd == "navigate":
        return {"url": args.url}, None
    if cmd == "screenshot":
        return {"output": args.output, "fullPage": args.full_page}, None
    if cmd == "click":
        return {"selector": args.selector}, None
    if cmd == "fill":
        return {"selector": args.selector, "value": args.value}, None
    if cmd == "eval":
        return {"script": args.script}, None
    if cmd == "console":
        return None, {"page": args.page, "level": args.level, "clear": args.clear or None}
    if cmd == "network":
        return None, {"page": args.page, "clear": args.clear or None}
    if cmd == "new-page":
        return {"url": args.url}, None
    if cmd == "select-page":
        return {"pageId": args.page_id}, None
    if cmd == "close-page":
        return {"pageId": args.page}, None
    if cmd == "wait":
        return {"selector": args.selector, "text": args.text, "timeout": args.timeout}, None
    if cmd == "snapshot":
        return {"output": args.output}, None
    return None, None


# ---------------------------------------------------------------------------
# Subparser registration
# ---------------------------------------------------------------------------


def _register_subcommands(subparsers: argparse._SubParsersAction) -> None:
    """Register every subcommand on *subparsers*."""

    # ── Daemon lifecycle ───────────────────────────────────────────────

    subparsers.add_parser("start", help="Start the daemon (auto-starts on first command)")
    subparsers.add_parser("stop", help="Stop the daemon and close the browser")
    subparsers.add_parser("status", help="Check daemon and browser status")
    subparsers.add_parser("daemon", help="Run the daemon in the foreground")

    # ── Page operations ────────────────────────────────────────────────

    p = subparsers.add_parser("navigate", help="Navigate to a URL")
    p.add_argument("url", help="URL to navigate to")

    p = subparsers.add_parser("screenshot", help="Take a screenshot")
    p.add_argument("-o", "--output", default=None, help="Output file path")
    p.add_argument(
        "-f", "--full-page", action="store_true", default=False, help="Capture full page"
    )

    p = subparsers.add_parser("click", help="Click on an element")
    p.add_argument("selector", help="CSS selector")

    p = subparsers.add_parser("fill", help="Fill a form field")
    p.add_argument("selector", help="CSS selector")
    p.add_argument("value", help="Value to fill")

    p = subparsers.add_parser("eval", help="Evaluate JavaScript in the page")
    p.add_argument("script", help="JavaScript expression or function")

    p = subparsers.add_parser(
        "wait",
        help="Wait for an element or text (with neither, returns once the page is resolved)",
    )
    p.add_argument("-s", "--selector", default=None, help="CSS selector to wait for")
    p.add_argument("-t", "--text", default=None, help="Text to wait for")
    p.add_argument(
        "--timeout", type=int, default=5000, help="Timeout in milliseconds (default: 5000)"
    )

    p = subparsers.add_parser("snapshot", help="Get a DOM snapshot")
    p.add_argument("-o", "--output", default=None, help="Output file path")

    # ── DevTools ───────────────────────────────────────────────────────

    p = subparsers.add_parser("console", help="Get console messages")
    p.add_argument("-p", "--page", default=None, help="Page ID (default: current)")
    p.add_argument(
        "--level",
        default=None,
        choices=["debug", "log", "info", "warning", "error"],
        help="Minimum level to show",
    )
    p.add_argument("--clear", action="store_true", default=False, help="Clear the log")

    p = subparsers.add_parser("network", help="Get network requests")
    p.add_argument("-p", "--page", default=None, help="Page ID (default: current)")
    p.add_argument("--clear", action="store_true", default=False, help="Clear the log")

    # ── Pages ──────────────────────────────────────────────────────────

    subparsers.add_parser("pages", help="List all open pages")

    p = subparsers.add_parser("new-page", help="Open a new page")
    p.add_argument("-u", "--url", default=None, help="URL to open")

    p = subparsers.add_parser("select-page", help="Select a page as active")
    p.add_argument("page_id", help="Page ID")

    p = subparsers.add_parser("close-page", help="Close the current page")
    p.add_argument("-p", "--page", default=None, help="Page ID to close")


# ---------------------------------------------------------------------------
# Main entry point
# ---------------------------------------------------------------------------


def _run_command(args: argparse.Namespace, config: DaemonConfig) -> dict:
    if args.command == "start":
        port = ensure_daemon(config)
        return {"success": True, "message": f"Daemon running on port {port}"}
    if args.command == "stop":
        return stop_daemon(config)
    if args.command == "status":
        return daemon_status(config)

    method, path = _ROUTES[args.command]
    body, params = build_request(args)
    return call_daemon(method, path, body=body, params=params, config=config)


def main(argv: list[str] | None = None) -> None:
    """Parse CLI arguments and dispatch to the daemon."""

    parser = argparse.ArgumentParser(
        prog="chrome-cli",
        description="CLI for Chrome browser automation with persistent sessions",
    )
    parser.add_argument("--config", default=None, help="Path to config file")
    parser.add_argument("-v", "--version", action="store_true", help="Print version")

    subparsers = parser.add_subparsers(dest="command")
    _register_subcommands(subparsers)

    args = parser.parse_args(argv if argv is not None else sys.argv[1:])

    if args.version:
        print(get_version())
        return

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    if args.command == "daemon":
        from chrome_cli.server import main as run_daemon

        run_daemon(args.config)
        return

    config = load_config(args.config)

    try:
        result = _run_command(args, config)
    except (ChromeCliError, httpx.HTTPError) as exc:
        if args.command == "stop":
            _output({"success": True, "message": "Daemon not running"})
            return
        if args.command == "status":
            _output({"success": False, "status": "Daemon not running"})
            return
        _output({"success": False, "error": str(exc)})
        sys.exit(1)

    _output(result)
