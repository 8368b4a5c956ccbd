"""Exception taxonomy for the chrome-cli daemon.

Command handlers raise these; ``CommandHandlers.handle_command`` is the only
place they are turned into ``{"success": False, "error": ...}`` responses.
"""

from __future__ import annotations


class ChromeCliError(Exception):
    """Base class for all chrome-cli errors."""


class BrowserConnectionError(ChromeCliError, ConnectionError):
    """No reachable browser, or the connection dropped mid-command."""

    def __init__(self, message: str, debug_url: str | None = None) -> None:
        super().__init__(message)
        self.debug_url = debug_url


class PageNotFoundError(ChromeCliError, LookupError):
    """A referenced page identifier is not registered."""

    def __init__(self, page_id: str | None = None) -> None:
        super().__init__("Page not found")
        self.page_id = page_id


class OperationError(ChromeCliError):
    """A page-level operation failed (selector, navigation, script, timeout)."""


class StartupError(ChromeCliError):
    """Fatal problem while starting the daemon or launching the browser."""
