"""Page registry: opaque page identifiers mapped to live page handles.

Tracks which page is "current" (the default target for commands that do not
name one), validates handles before they are used, and keeps the per-page
capture buffers.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

from chrome_cli.browser import BrowserConnectionManager
from chrome_cli.capture import PageCapture
from chrome_cli.config import DaemonConfig
from chrome_cli.errors import PageNotFoundError

logger = logging.getLogger("chrome_cli.registry")

_BLANK_URLS = ("about:blank", "chrome://newtab/")

# Captures kept for pages that were evicted rather than explicitly closed.
MAX_ORPHANED_CAPTURES = 50


def is_blank_url(url: str) -> bool:
    return url in _BLANK_URLS or url.startswith("chrome://newtab")


class PageRegistry:
    """Owns the page table and the current-page pointer.

    ``current_page_id`` is always ``None`` or a key of ``pages``.  Every
    mutation goes through ``_register`` / ``_remove`` so that invariant holds
    after each step.
    """

    def __init__(self, connection: BrowserConnectionManager, config: DaemonConfig) -> None:
        self.connection = connection
        self.config = config
        self.pages: dict[str, Any] = {}
        self.current_page_id: str | None = None
        self.captures: dict[str, PageCapture] = {}
        self._last_id_ms = 0
        self._lock = asyncio.Lock()
        connection.on_disconnect(self.reset)

    # -- Identifiers ---------------------------------------------------------

    def generate_page_id(self) -> str:
        """Return a new ``page_<ms>`` identifier, never reusing an earlier one."""
        now = int(time.time() * 1000)
        if now <= self._last_id_ms:
            now = self._last_id_ms + 1
        self._last_id_ms = now
        return f"page_{now}"

    # -- Registration --------------------------------------------------------

    def _register(self, page: Any) -> str:
        page_id = self.generate_page_id()
        capture = PageCapture(
            console_capacity=self.config.capture.console_capacity,
            network_capacity=self.config.capture.network_capacity,
        )
        # Listeners go on before anyone else can use the page.
        capture.attach(page)
        self.pages[page_id] = page
        self.captures[page_id] = capture
        self.current_page_id = page_id
        logger.info(f"Registered {page_id} ({page.url})")
        return page_id

    def _remove(self, page_id: str, drop_capture: bool = False) -> None:
        self.pages.pop(page_id, None)
        if drop_capture:
            self.captures.pop(page_id, None)
        else:
            self._prune_orphaned_captures()
        if self.current_page_id == page_id:
            self.current_page_id = next(iter(self.pages), None)

    def reset(self) -> None:
        """Forget every page; called when the browser connection drops."""
        self.pages.clear()
        self.current_page_id = None
        self._prune_orphaned_captures()

    def _prune_orphaned_captures(self) -> None:
        orphaned = [pid for pid in self.captures if pid not in self.pages]
        # Insertion order is registration order, so the oldest go first.
        for page_id in orphaned[: max(0, len(orphaned) - MAX_ORPHANED_CAPTURES)]:
            del self.captures[page_id]
            logger.debug(f"Dropped capture buffers of {page_id}")

    # -- Validation ----------------------------------------------------------

    async def is_page_valid(self, page: Any) -> bool:
        """Cheap round-trip probe; ``False`` if the page is closed or unreachable."""
        if page.is_closed():
            return False
        try:
            await asyncio.wait_for(
                page.evaluate("1"), timeout=self.config.timeouts.probe / 1000
            )
        except Exception as exc:
            logger.debug(f"Page probe failed: {exc}")
            return False
        return True

    # -- Resolution ----------------------------------------------------------

    async def resolve_page(self, page_id: str | None = None) -> tuple[Any, str]:
        """Return ``(page, page_id)`` for a command.

        Resolution order: the explicit *page_id* if registered and valid,
        then the current page if valid, then a newly created (or reused
        blank) page.  Pages that fail validation are dropped from the table
        but keep their capture buffers.
        """
        await self.connection.acquire()
        async with self._lock:
            if page_id is not None and page_id in self.pages:
                page = await self._validated(page_id)
                if page is not None:
                    return page, page_id

            current = self.current_page_id
            if current is not None:
                page = await self._validated(current)
                if page is not None:
                    return page, current

            return await self._create_page(reuse_blank=True)

    async def _validated(self, page_id: str) -> Any | None:
        page = self.pages[page_id]
        if await self.is_page_valid(page):
            return page
        logger.info(f"Evicting unresponsive page {page_id}")
        self._remove(page_id)
        return None

    async def create_page(self, reuse_blank: bool = False) -> tuple[Any, str]:
        """Register a new page and make it current."""
        async with self._lock:
            return await self._create_page(reuse_blank=reuse_blank)

    async def _create_page(self, reuse_blank: bool) -> tuple[Any, str]:
        context = await self.connection.get_context()
        page = self._find_blank_page() if reuse_blank else None
        if page is None:
            page = await context.new_page()
        else:
            logger.debug(f"Reusing blank tab {page.url}")
        return page, self._register(page)

    def _find_blank_page(self) -> Any | None:
        browser = self.connection.browser
        if browser is None:
            return None
        registered = list(self.pages.values())
        for context in browser.contexts:
            for page in context.pages:
                if any(page is p for p in registered):
                    continue
                if is_blank_url(page.url) and not page.is_closed():
                    return page
        return None

    # -- Selection / closing -------------------------------------------------

    def get_page(self, page_id: str) -> Any:
        page = self.pages.get(page_id)
        if page is None:
            raise PageNotFoundError(page_id)
        return page

    def select_page(self, page_id: str) -> Any:
        """Make *page_id* current; raises ``PageNotFoundError`` if unknown."""
        page = self.get_page(page_id)
        self.current_page_id = page_id
        return page

    async def close_page(self, page_id: str | None = None) -> str:
        """Close *page_id* (default: the current page) and drop all its state."""
        async with self._lock:
            target = page_id or self.current_page_id
            if target is None or target not in self.pages:
                raise PageNotFoundError(target)
            page = self.pages[target]
            try:
                await page.close()
            except Exception as exc:
                # Already gone remotely; the local entry still has to go.
                logger.warning(f"Closing {target} failed: {exc}")
            self._remove(target, drop_capture=True)
            logger.info(f"Closed {target}")
            return target

    # -- Listing -------------------------------------------------------------

    async def list_pages(self) -> list[dict[str, str]]:
        entries: list[dict[str, str]] = []
        for page_id, page in list(self.pages.items()):
            try:
                entries.append(
                    {"id": page_id, "url": page.url, "title": await page.title()}
                )
            except Exception:
                entries.append({"id": page_id, "url": "unknown", "title": "unknown"})
        return entries

    # -- Capture access ------------------------------------------------------

    def capture_for(self, page_id: str | None = None) -> tuple[str | None, PageCapture | None]:
        """Return the capture for *page_id* (default: current page)."""
        target = page_id or self.current_page_id
        if target is None:
            return None, None
        return target, self.captures.get(target)
