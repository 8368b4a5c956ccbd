"""Shared fixtures for chrome-cli tests."""

from __future__ import annotations

import itertools
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from chrome_cli.browser import BrowserConnectionManager, ConnectionState
from chrome_cli.config import BrowserConfig, DaemonConfig
from chrome_cli.handlers import CommandHandlers, Session
from chrome_cli.registry import PageRegistry

_page_numbers = itertools.count()


def make_page(url: str = "about:blank", title: str = "Example") -> MagicMock:
    """A MagicMock standing in for a Playwright Page.

    ``page.on`` records listeners so tests can fire events with
    ``page.emit(event, payload)``.
    """
    page = MagicMock(name=f"page-{next(_page_numbers)}")
    page.url = url
    page.title = AsyncMock(return_value=title)
    page.goto = AsyncMock()
    page.wait_for_load_state = AsyncMock()
    page.evaluate = AsyncMock(return_value=1)
    page.is_closed = MagicMock(return_value=False)
    page.close = AsyncMock()
    page.bring_to_front = AsyncMock()
    page.screenshot = AsyncMock()
    page.click = AsyncMock()
    page.fill = AsyncMock()
    page.wait_for_selector = AsyncMock()
    page.wait_for_function = AsyncMock()

    listeners: dict[str, list[Any]] = {}

    def _on(event: str, callback: Any) -> None:
        listeners.setdefault(event, []).append(callback)

    def _emit(event: str, payload: Any) -> None:
        for callback in listeners.get(event, []):
            callback(payload)

    page.on = MagicMock(side_effect=_on)
    page.listeners = listeners
    page.emit = _emit
    return page


def make_console_message(text: str, level: str = "log") -> MagicMock:
    msg = MagicMock()
    msg.type = level
    msg.text = text
    return msg


def make_request(url: str, method: str = "GET", resource_type: str = "document") -> MagicMock:
    request = MagicMock()
    request.url = url
    request.method = method
    request.resource_type = resource_type
    return request


def make_response(url: str, status: int = 200, request: Any = None) -> MagicMock:
    response = MagicMock()
    response.url = url
    response.status = status
    # An unrelated request object forces URL-based correlation.
    response.request = request if request is not None else make_request(url)
    return response


@pytest.fixture
def config_dir(tmp_path):
    return tmp_path / ".chrome-cli"


@pytest.fixture
def home_dir(tmp_path, monkeypatch):
    """Patch Path.home() so default marker paths live under tmp_path."""
    monkeypatch.setattr(Path, "home", lambda: tmp_path)
    return tmp_path


@pytest.fixture
def default_config(config_dir):
    """A DaemonConfig rooted in a temporary config dir."""
    return DaemonConfig(
        config_dir=str(config_dir),
        browser=BrowserConfig(
            chrome_path="/usr/bin/google-chrome",
            user_data_dir=str(config_dir.parent / "user-profile"),
            launch_settle_delay=0,
        ),
    )


@pytest.fixture
def mock_context():
    """A MagicMock standing in for a Playwright BrowserContext.

    ``new_page`` returns a fresh mock page and adds it to ``ctx.pages``.
    """
    ctx = MagicMock()
    ctx.pages = []

    def _new_page() -> MagicMock:
        page = make_page()
        ctx.pages.append(page)
        return page

    ctx.new_page = AsyncMock(side_effect=_new_page)
    return ctx


@pytest.fixture
def mock_browser(mock_context):
    """A MagicMock standing in for a CDP-connected Playwright Browser."""
    browser = MagicMock()
    browser.contexts = [mock_context]
    browser.is_connected = MagicMock(return_value=True)
    browser.close = AsyncMock()
    browser.new_context = AsyncMock(return_value=mock_context)
    return browser


@pytest.fixture
def connection(default_config, mock_browser):
    """A BrowserConnectionManager that is already connected to mock_browser."""
    manager = BrowserConnectionManager(default_config)
    manager.browser = mock_browser
    manager.state = ConnectionState.CONNECTED
    return manager


@pytest.fixture
def registry(connection, default_config):
    return PageRegistry(connection, default_config)


@pytest.fixture
def session(default_config, connection, registry):
    return Session(default_config, connection=connection, registry=registry)


@pytest.fixture
def handlers(session):
    return CommandHandlers(session)
