"""Tests for chrome_cli.registry module."""

from __future__ import annotations

import asyncio
import random

import pytest

from chrome_cli.errors import PageNotFoundError
from chrome_cli.browser import ConnectionState
from chrome_cli.registry import MAX_ORPHANED_CAPTURES, PageRegistry, is_blank_url
from conftest import make_console_message, make_page


def _assert_current_invariant(registry: PageRegistry) -> None:
    assert registry.current_page_id is None or registry.current_page_id in registry.pages


class TestIsBlankUrl:
    @pytest.mark.parametrize("url", ["about:blank", "chrome://newtab/", "chrome://newtab"])
    def test_blank(self, url):
        assert is_blank_url(url)

    @pytest.mark.parametrize("url", ["https://example.com", "chrome://settings", ""])
    def test_not_blank(self, url):
        assert not is_blank_url(url)


class TestPageIds:
    def test_prefix(self, registry):
        assert registry.generate_page_id().startswith("page_")

    def test_ids_never_repeat(self, registry):
        ids = [registry.generate_page_id() for _ in range(200)]
        assert len(set(ids)) == 200

    def test_ids_strictly_increase(self, registry):
        ids = [int(registry.generate_page_id()[len("page_"):]) for _ in range(50)]
        assert ids == sorted(ids)
        assert len(set(ids)) == len(ids)


class TestResolvePage:
    async def test_creates_page_when_registry_empty(self, registry, mock_context):
        page, page_id = await registry.resolve_page()
        assert page_id in registry.pages
        assert registry.current_page_id == page_id
        assert page_id in registry.captures
        mock_context.new_page.assert_awaited_once()
        _assert_current_invariant(registry)

    async def test_listeners_attached_on_registration(self, registry):
        page, page_id = await registry.resolve_page()
        page.emit("console", make_console_message("hi"))
        assert registry.captures[page_id].console_messages()[0]["text"] == "hi"

    async def test_reuses_unregistered_blank_tab(self, registry, mock_context):
        blank = make_page("about:blank")
        mock_context.pages.append(blank)
        page, page_id = await registry.resolve_page()
        assert page is blank
        mock_context.new_page.assert_not_awaited()

    async def test_does_not_reuse_non_blank_tab(self, registry, mock_context):
        mock_context.pages.append(make_page("https://example.com"))
        page, _ = await registry.resolve_page()
        assert page.url == "about:blank"
        mock_context.new_page.assert_awaited_once()

    async def test_returns_current_page(self, registry, mock_context):
        first, first_id = await registry.resolve_page()
        again, again_id = await registry.resolve_page()
        assert again is first
        assert again_id == first_id
        mock_context.new_page.assert_awaited_once()

    async def test_explicit_page_id(self, registry):
        a, a_id = await registry.create_page()
        b, b_id = await registry.create_page()
        assert registry.current_page_id == b_id
        page, page_id = await registry.resolve_page(a_id)
        assert page is a
        assert page_id == a_id

    async def test_unknown_explicit_id_falls_back_to_current(self, registry):
        current, current_id = await registry.create_page()
        page, page_id = await registry.resolve_page("page_does_not_exist")
        assert page is current
        assert page_id == current_id

    async def test_invalid_explicit_page_falls_back_to_current(self, registry):
        stale, stale_id = await registry.create_page()
        good, good_id = await registry.create_page()
        stale.is_closed.return_value = True

        page, page_id = await registry.resolve_page(stale_id)
        assert page is good
        assert page_id == good_id
        assert stale_id not in registry.pages
        # Evicted pages keep their capture buffers.
        assert stale_id in registry.captures
        _assert_current_invariant(registry)

    async def test_invalid_current_page_is_replaced(self, registry, mock_context):
        stale, stale_id = await registry.resolve_page()
        stale.url = "https://example.com/"
        stale.evaluate.side_effect = RuntimeError("Target closed")

        page, page_id = await registry.resolve_page()
        assert page is not stale
        assert page_id != stale_id
        assert registry.current_page_id == page_id
        assert stale_id not in registry.pages
        assert mock_context.new_page.await_count == 2
        _assert_current_invariant(registry)

    async def test_full_fallback_chain_creates_new_page(self, registry, mock_context):
        stale, stale_id = await registry.create_page()
        broken, broken_id = await registry.create_page()
        stale.url = "https://a.test/"
        broken.url = "https://b.test/"
        stale.is_closed.return_value = True
        broken.evaluate.side_effect = RuntimeError("Target closed")

        page, page_id = await registry.resolve_page(stale_id)

        assert page is not stale
        assert page is not broken
        assert page_id not in (stale_id, broken_id)
        assert list(registry.pages) == [page_id]
        assert registry.current_page_id == page_id
        assert mock_context.new_page.await_count == 3
        assert {stale_id, broken_id} <= set(registry.captures)

    async def test_probe_timeout_counts_as_invalid(self, registry, default_config):
        default_config.timeouts.probe = 10
        stale, stale_id = await registry.resolve_page()

        async def _hang(*args, **kwargs):
            await asyncio.sleep(10)

        stale.evaluate.side_effect = _hang
        assert await registry.is_page_valid(stale) is False

    async def test_acquires_connection_first(self, registry, connection, mock_browser):
        mock_browser.is_connected.return_value = False
        connection._attach_or_launch = _fail_attach
        with pytest.raises(RuntimeError):
            await registry.resolve_page()


async def _fail_attach():
    raise RuntimeError("no browser")


class TestCreatePage:
    async def test_new_page_becomes_current(self, registry):
        _, first = await registry.create_page()
        _, second = await registry.create_page()
        assert registry.current_page_id == second
        assert first != second
        assert len(registry.pages) == 2

    async def test_new_page_ignores_blank_tabs(self, registry, mock_context):
        mock_context.pages.append(make_page("about:blank"))
        await registry.create_page(reuse_blank=False)
        mock_context.new_page.assert_awaited_once()

    async def test_creates_context_when_browser_has_none(self, registry, mock_browser, mock_context):
        mock_browser.contexts = []
        await registry.create_page()
        mock_browser.new_context.assert_awaited_once_with(no_viewport=True)


class TestSelectAndClose:
    async def test_select_page(self, registry):
        a, a_id = await registry.create_page()
        await registry.create_page()
        assert registry.select_page(a_id) is a
        assert registry.current_page_id == a_id

    def test_select_unknown_page(self, registry):
        with pytest.raises(PageNotFoundError, match="Page not found"):
            registry.select_page("page_1")

    async def test_close_current_page_reassigns_current(self, registry):
        _, a_id = await registry.create_page()
        b, b_id = await registry.create_page()

        closed = await registry.close_page()
        assert closed == b_id
        b.close.assert_awaited_once()
        assert registry.current_page_id == a_id
        assert b_id not in registry.captures
        _assert_current_invariant(registry)

    async def test_close_last_page_clears_current(self, registry):
        _, a_id = await registry.create_page()
        await registry.close_page(a_id)
        assert registry.current_page_id is None
        assert registry.pages == {}

    async def test_close_non_current_page_keeps_current(self, registry):
        _, a_id = await registry.create_page()
        _, b_id = await registry.create_page()
        await registry.close_page(a_id)
        assert registry.current_page_id == b_id

    async def test_current_id_invariant_over_sequence(self, registry):
        rng = random.Random(7)
        for _ in range(60):
            if registry.pages and rng.random() < 0.45:
                target = rng.choice([None, *registry.pages])
                await registry.close_page(target)
                if registry.pages:
                    assert registry.current_page_id is not None
            else:
                await registry.create_page()
            _assert_current_invariant(registry)

    async def test_close_unknown_page(self, registry):
        with pytest.raises(PageNotFoundError):
            await registry.close_page("page_42")

    async def test_close_with_no_pages(self, registry):
        with pytest.raises(PageNotFoundError):
            await registry.close_page()

    async def test_close_tolerates_remote_failure(self, registry):
        page, page_id = await registry.create_page()
        page.close.side_effect = RuntimeError("Target closed")
        assert await registry.close_page(page_id) == page_id
        assert page_id not in registry.pages


class TestListingAndReset:
    async def test_orphaned_captures_are_capped(self, registry, connection, mock_browser):
        created = []
        for _ in range(MAX_ORPHANED_CAPTURES + 5):
            _, page_id = await registry.create_page()
            created.append(page_id)
            connection._handle_disconnect(mock_browser)
            connection.browser = mock_browser
            connection.state = ConnectionState.CONNECTED

        assert registry.pages == {}
        assert len(registry.captures) == MAX_ORPHANED_CAPTURES
        assert list(registry.captures) == created[-MAX_ORPHANED_CAPTURES:]

    async def test_closed_page_capture_not_counted_as_orphan(self, registry):
        _, kept = await registry.create_page()
        _, closed = await registry.create_page()
        await registry.close_page(closed)
        assert list(registry.captures) == [kept]

    async def test_list_pages(self, registry):
        page, page_id = await registry.create_page()
        page.url = "https://example.com/"
        page.title.return_value = "Example Domain"
        assert await registry.list_pages() == [
            {"id": page_id, "url": "https://example.com/", "title": "Example Domain"}
        ]

    async def test_list_pages_tolerates_broken_page(self, registry):
        page, page_id = await registry.create_page()
        page.title.side_effect = RuntimeError("gone")
        assert await registry.list_pages() == [
            {"id": page_id, "url": "unknown", "title": "unknown"}
        ]

    async def test_disconnect_resets_registry(self, registry, connection, mock_browser):
        _, page_id = await registry.create_page()
        connection._handle_disconnect(mock_browser)
        assert registry.pages == {}
        assert registry.current_page_id is None
        assert page_id in registry.captures

    async def test_capture_for_defaults_to_current(self, registry):
        _, page_id = await registry.create_page()
        target, capture = registry.capture_for()
        assert target == page_id
        assert capture is registry.captures[page_id]

    def test_capture_for_without_pages(self, registry):
        assert registry.capture_for() == (None, None)
