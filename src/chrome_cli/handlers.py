"""Session state and command handlers for the chrome-cli daemon.

``Session`` owns everything with a lifetime: the browser connection, the page
registry and its capture buffers.  ``CommandHandlers`` exposes one ``cmd_*``
coroutine per command; ``handle_command`` dispatches by name and is the single
place where failures become ``{"success": False, "error": ...}`` responses.
Each command is attempted exactly once.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Any, Callable

from patchright.async_api import TimeoutError as PlaywrightTimeoutError

from chrome_cli.browser import BrowserConnectionManager
from chrome_cli.config import DaemonConfig
from chrome_cli.errors import (
    BrowserConnectionError,
    ChromeCliError,
    OperationError,
    PageNotFoundError,
)
from chrome_cli.markers import cleanup_markers, generate_output_filename
from chrome_cli.registry import PageRegistry
from chrome_cli.snapshot import take_snapshot

logger = logging.getLogger("chrome_cli.handlers")

LEVEL_ORDER = {"debug": 0, "log": 1, "info": 2, "warning": 3, "error": 4}


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


class Session:
    """Process-wide daemon state, passed explicitly to the handlers."""

    def __init__(
        self,
        config: DaemonConfig,
        connection: BrowserConnectionManager | None = None,
        registry: PageRegistry | None = None,
    ) -> None:
        self.config = config
        self.connection = connection or BrowserConnectionManager(config)
        self.registry = registry or PageRegistry(self.connection, config)
        self.started_at = time.time()
        # Set by the server so that teardown can stop the listener.
        self.request_exit: Callable[[], None] | None = None

    async def close(self) -> None:
        """Close the browser connection (idempotent)."""
        try:
            await self.connection.close()
        except Exception as exc:
            logger.warning(f"Error while closing browser connection: {exc}")
        self.registry.reset()

    async def teardown(self) -> None:
        """Second phase of shutdown, run after the acknowledgement was sent."""
        logger.info("Shutdown requested, tearing down session")
        try:
            await self.close()
        finally:
            cleanup_markers(self.config.config_dir)
            if self.request_exit is not None:
                self.request_exit()


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


class CommandHandlers:
    """One ``cmd_*`` method per daemon command."""

    def __init__(self, session: Session) -> None:
        self.session = session

    @property
    def config(self) -> DaemonConfig:
        return self.session.config

    @property
    def registry(self) -> PageRegistry:
        return self.session.registry

    # -- Dispatch ------------------------------------------------------------

    async def handle_command(
        self, cmd: str, args: dict[str, Any] | None = None
    ) -> tuple[int, dict[str, Any]]:
        """Run *cmd* and return ``(http_status, body)``."""
        method_name = f"cmd_{cmd.replace('-', '_')}"
        handler = getattr(self, method_name, None)
        if handler is None:
            return 404, {"success": False, "error": f"Unknown command: {cmd}"}

        logger.debug(f"Received command: {cmd} args={args}")
        try:
            result = await handler(**(args or {}))
        except PageNotFoundError as exc:
            logger.warning(f"Command {cmd!r} failed: {exc}")
            return 404, {"success": False, "error": str(exc)}
        except ChromeCliError as exc:
            logger.warning(f"Command {cmd!r} failed: {exc}")
            return 500, {"success": False, "error": str(exc)}
        except Exception as exc:
            error = self._classify(exc)
            logger.warning(f"Command {cmd!r} failed: {error}")
            return 500, {"success": False, "error": str(error)}

        logger.debug(f"Command {cmd!r} succeeded")
        return 200, result

    def _classify(self, exc: Exception) -> ChromeCliError:
        # In-flight page calls fail once the connection drops.
        connection = self.session.connection
        if not connection.is_alive():
            return BrowserConnectionError(
                f"Browser connection lost: {exc}", debug_url=connection.debug_url
            )
        return OperationError(str(exc))

    # -- Connection / global -------------------------------------------------

    async def cmd_health(self) -> dict[str, Any]:
        connection = self.session.connection
        return {
            "status": "ok",
            "browserConnected": connection.is_alive(),
            "connectionState": connection.state.value,
            "pageCount": len(self.registry.pages),
            "uptime": round(time.time() - self.session.started_at, 3),
        }

    async def cmd_pages(self) -> dict[str, Any]:
        return {
            "success": True,
            "currentPageId": self.registry.current_page_id,
            "pages": await self.registry.list_pages(),
        }

    async def cmd_new_page(self, url: str | None = None) -> dict[str, Any]:
        page, page_id = await self.registry.create_page(reuse_blank=False)
        if url:
            await self._goto(page, url)
        return {"success": True, "pageId": page_id, "url": page.url}

    async def cmd_select_page(self, page_id: str) -> dict[str, Any]:
        page = self.registry.select_page(page_id)
        await page.bring_to_front()
        return {"success": True, "pageId": page_id}

    async def cmd_close_page(self, page_id: str | None = None) -> dict[str, Any]:
        closed = await self.registry.close_page(page_id)
        return {
            "success": True,
            "pageId": closed,
            "currentPageId": self.registry.current_page_id,
        }

    async def cmd_shutdown(self) -> dict[str, Any]:
        # Teardown is scheduled by the transport after this response is sent.
        return {"success": True, "message": "Shutting down"}

    # -- Page operations -----------------------------------------------------

    async def _goto(self, page: Any, url: str) -> None:
        await page.goto(
            url, wait_until="domcontentloaded", timeout=self.config.timeouts.navigation
        )
        try:
            await page.wait_for_load_state(
                "networkidle", timeout=self.config.timeouts.wait
            )
        except PlaywrightTimeoutError:
            logger.debug(f"{url} never went network-idle, continuing")

    async def cmd_navigate(self, url: str, page_id: str | None = None) -> dict[str, Any]:
        page, page_id = await self.registry.resolve_page(page_id)
        await self._goto(page, url)
        return {
            "success": True,
            "pageId": page_id,
            "title": await page.title(),
            "url": page.url,
        }

    async def cmd_screenshot(
        self,
        output: str | None = None,
        full_page: bool = False,
        page_id: str | None = None,
    ) -> dict[str, Any]:
        page, page_id = await self.registry.resolve_page(page_id)
        if output:
            path = Path(output).expanduser()
        else:
            path = generate_output_filename("screenshot", "png", self.config.config_dir)
        path.parent.mkdir(parents=True, exist_ok=True)
        await page.screenshot(
            path=str(path), full_page=full_page, timeout=self.config.timeouts.navigation
        )
        return {"success": True, "pageId": page_id, "path": str(path)}

    async def cmd_click(self, selector: str, page_id: str | None = None) -> dict[str, Any]:
        page, page_id = await self.registry.resolve_page(page_id)
        await page.click(selector, timeout=self.config.timeouts.action)
        return {"success": True, "pageId": page_id}

    async def cmd_fill(
        self, selector: str, value: str, page_id: str | None = None
    ) -> dict[str, Any]:
        page, page_id = await self.registry.resolve_page(page_id)
        await page.fill(selector, value, timeout=self.config.timeouts.action)
        return {"success": True, "pageId": page_id}

    async def cmd_evaluate(self, script: str, page_id: str | None = None) -> dict[str, Any]:
        page, page_id = await self.registry.resolve_page(page_id)
        result = await page.evaluate(script)
        return {"success": True, "pageId": page_id, "result": result}

    async def cmd_wait(
        self,
        selector: str | None = None,
        text: str | None = None,
        timeout: int | None = None,
        page_id: str | None = None,
    ) -> dict[str, Any]:
        """Wait for *selector* (preferred) or *text*; with neither, only the page
        is resolved."""
        page, page_id = await self.registry.resolve_page(page_id)
        timeout = timeout if timeout is not None else self.config.timeouts.wait
        if selector:
            await page.wait_for_selector(selector, timeout=timeout)
        elif text:
            await page.wait_for_function(
                "t => !!document.body && document.body.innerText.includes(t)",
                arg=text,
                timeout=timeout,
            )
        return {"success": True, "pageId": page_id}

    async def cmd_snapshot(
        self, output: str | None = None, page_id: str | None = None
    ) -> dict[str, Any]:
        page, page_id = await self.registry.resolve_page(page_id)
        snapshot = await take_snapshot(page)
        if not output:
            return {"success": True, "pageId": page_id, "snapshot": snapshot}
        path = Path(output).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(snapshot, encoding="utf-8")
        return {
            "success": True,
            "pageId": page_id,
            "snapshot": f"Saved to {path}",
            "path": str(path),
        }

    # -- Capture buffers -----------------------------------------------------

    async def cmd_console(
        self,
        page_id: str | None = None,
        level: str | None = None,
        clear: bool = False,
    ) -> dict[str, Any]:
        """Return buffered console messages, optionally at or above *level*."""
        target, capture = self.registry.capture_for(page_id)
        if capture is None:
            return {"success": True, "pageId": target, "messages": []}
        if clear:
            capture.console.clear()
            return {"success": True, "pageId": target, "messages": []}
        messages = capture.console_messages()
        if level and level in LEVEL_ORDER:
            threshold = LEVEL_ORDER[level]
            messages = [
                m for m in messages if LEVEL_ORDER.get(m["level"], 1) >= threshold
            ]
        return {"success": True, "pageId": target, "messages": messages}

    async def cmd_network(
        self, page_id: str | None = None, clear: bool = False
    ) -> dict[str, Any]:
        """Return the buffered request log for a page."""
        target, capture = self.registry.capture_for(page_id)
        if capture is None:
            return {"success": True, "pageId": target, "requests": []}
        if clear:
            capture.network.clear()
            return {"success": True, "pageId": target, "requests": []}
        return {"success": True, "pageId": target, "requests": capture.network_requests()}
