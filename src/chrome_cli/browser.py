"""Browser connection management.

Owns the single CDP connection to a locally running Chrome.  If nothing is
listening on the debugging address, Chrome is launched with remote debugging
enabled and the attach is retried once.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
import subprocess
import sys
from enum import Enum
from pathlib import Path
from typing import Any, Callable

import httpx
from patchright.async_api import async_playwright

from chrome_cli.config import DaemonConfig
from chrome_cli.errors import BrowserConnectionError, StartupError

logger = logging.getLogger("chrome_cli.browser")

# Attach, launch, attach again.
ATTACH_ATTEMPTS = 2


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


def is_chrome_running() -> bool:
    """Return ``True`` if an independent Chrome process is already running.

    This is a heuristic: it looks for a process by name and cannot tell
    which profile that process is using.
    """
    if sys.platform == "win32":
        cmd = ["tasklist", "/FI", "IMAGENAME eq chrome.exe", "/NH"]
        try:
            out = subprocess.run(cmd, capture_output=True, text=True, check=False)
        except FileNotFoundError:
            return False
        return "chrome.exe" in out.stdout.lower()

    name = "Google Chrome" if sys.platform == "darwin" else "chrome"
    try:
        result = subprocess.run(
            ["pgrep", "-x", name],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            check=False,
        )
    except FileNotFoundError:
        return False
    return result.returncode == 0


def debug_endpoint_reachable(debug_url: str, timeout: float = 1.0) -> bool:
    """Return ``True`` if a browser answers on the CDP ``/json/version`` endpoint."""
    try:
        response = httpx.get(f"{debug_url}/json/version", timeout=timeout)
    except httpx.HTTPError:
        return False
    return response.status_code == 200


def check_browser_available(config: DaemonConfig) -> None:
    """Fail fast when there is neither a Chrome to attach to nor one to launch.

    Raises ``StartupError`` if the configured executable cannot be found and
    nothing is listening on the debugging address.
    """
    chrome_path = config.browser.chrome_path
    if Path(chrome_path).exists() or shutil.which(chrome_path):
        return
    if debug_endpoint_reachable(config.browser.debug_url):
        logger.info(f"Chrome executable {chrome_path} not found, attaching only")
        return
    raise StartupError(
        f"Chrome executable not found: {chrome_path} "
        f"(and nothing is listening on {config.browser.debug_url})"
    )


class BrowserConnectionManager:
    """Supervises the one browser connection shared by every page."""

    def __init__(self, config: DaemonConfig) -> None:
        self.config = config
        self.playwright: Any = None
        self.browser: Any = None
        self.state = ConnectionState.DISCONNECTED
        self._lock = asyncio.Lock()
        self._disconnect_callbacks: list[Callable[[], None]] = []

    # -- Properties ----------------------------------------------------------

    @property
    def debug_url(self) -> str:
        return self.config.browser.debug_url

    @property
    def connected(self) -> bool:
        return self.browser is not None and self.state is ConnectionState.CONNECTED

    def is_alive(self) -> bool:
        """Connected and the underlying transport still reports so."""
        return self.connected and self.browser.is_connected()

    def on_disconnect(self, callback: Callable[[], None]) -> None:
        """Register *callback* to run when the browser connection drops."""
        self._disconnect_callbacks.append(callback)

    # -- Connection lifecycle ------------------------------------------------

    async def acquire(self) -> Any:
        """Return the live browser connection, attaching or launching as needed.

        Repeated calls while connected return the same browser object.
        """
        if self.browser is not None and not self.browser.is_connected():
            # Missed the event; treat it as a drop now.
            self._handle_disconnect(self.browser)
        if self.connected:
            return self.browser

        async with self._lock:
            if self.connected:
                return self.browser
            self.state = ConnectionState.CONNECTING
            try:
                browser = await self._attach_or_launch()
            except BaseException:
                self.state = ConnectionState.DISCONNECTED
                raise
            browser.on("disconnected", lambda _: self._handle_disconnect(browser))
            self.browser = browser
            self.state = ConnectionState.CONNECTED
            logger.info(f"Connected to browser at {self.debug_url}")
            return browser

    async def get_context(self) -> Any:
        """Return the browser's default context, creating one if it has none."""
        browser = await self.acquire()
        if browser.contexts:
            return browser.contexts[0]
        return await browser.new_context(no_viewport=True)

    async def close(self) -> None:
        """Close the browser and stop the Playwright driver."""
        browser, self.browser = self.browser, None
        self.state = ConnectionState.DISCONNECTED
        try:
            if browser is not None:
                await browser.close()
        finally:
            if self.playwright is not None:
                await self.playwright.stop()
                self.playwright = None

    async def _attach_or_launch(self) -> Any:
        last_error: Exception | None = None
        for attempt in range(ATTACH_ATTEMPTS):
            try:
                return await self._attach()
            except StartupError:
                raise
            except Exception as exc:
                last_error = exc
                logger.warning(
                    f"Attach to {self.debug_url} failed (attempt {attempt + 1}): {exc}"
                )
                if attempt == 0:
                    await self.launch_chrome()
        raise BrowserConnectionError(
            f"Failed to connect to Chrome at {self.debug_url}. Start Chrome with "
            f"--remote-debugging-port={self.config.browser.debug_port}",
            debug_url=self.debug_url,
        ) from last_error

    async def _attach(self) -> Any:
        if self.playwright is None:
            self.playwright = await async_playwright().start()
        return await self.playwright.chromium.connect_over_cdp(
            self.debug_url, timeout=self.config.timeouts.navigation
        )

    def _handle_disconnect(self, browser: Any) -> None:
        # Ignore late events from a connection that was already replaced.
        if browser is None or browser is not self.browser:
            return
        logger.warning("Browser disconnected, resetting session state")
        self.browser = None
        self.state = ConnectionState.DISCONNECTED
        for callback in self._disconnect_callbacks:
            callback()

    # -- Chrome process ------------------------------------------------------

    def select_profile_dir(self) -> Path:
        """Pick the user-data-dir for a fresh Chrome process.

        The user's own profile keeps their logins, but only when no other
        Chrome is running; otherwise Chrome would hand the launch over to the
        running instance, so a dedicated profile is used instead.
        """
        bcfg = self.config.browser
        if bcfg.reuse_user_profile and not is_chrome_running():
            return Path(bcfg.user_data_dir)
        profile_dir = self.config.profile_dir
        profile_dir.mkdir(parents=True, exist_ok=True)
        return profile_dir

    def build_launch_args(self, profile_dir: Path) -> list[str]:
        bcfg = self.config.browser
        args = [
            bcfg.chrome_path,
            f"--remote-debugging-port={bcfg.debug_port}",
            f"--user-data-dir={profile_dir}",
            "--no-first-run",
            "--no-default-browser-check",
        ]
        if bcfg.headless:
            args.append("--headless=new")
        args.extend(bcfg.extra_args)
        return args

    async def launch_chrome(self) -> subprocess.Popen:
        """Start Chrome detached with remote debugging and wait for it to settle.

        The process is not tracked afterwards; Chrome outlives the daemon.
        """
        profile_dir = self.select_profile_dir()
        args = self.build_launch_args(profile_dir)
        logger.info(f"Launching Chrome with profile {profile_dir}")
        logger.debug(f"Chrome args: {' '.join(args)}")
        try:
            process = subprocess.Popen(
                args,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
            )
        except FileNotFoundError as exc:
            raise StartupError(
                f"Chrome executable not found: {self.config.browser.chrome_path}"
            ) from exc
        logger.info(f"Chrome started (pid={process.pid})")
        await asyncio.sleep(self.config.browser.launch_settle_delay)
        return process
