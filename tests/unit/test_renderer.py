# Copyright 2026 Firefly Software Solutions Inc
# SPDX-License-Identifier: Apache-2.0

"""Unit tests for RendererHandle."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import pytest_asyncio

from pagecast.config import PageCastConfig
from pagecast.core.renderer import CaptureRegion, RendererEvent, RendererHandle
from pagecast.exceptions import RenderCaptureError, RendererLifecycleFault, RenderLoadError


def _patch_playwright(mock_playwright):
    """Patch async_playwright() to start ``mock_playwright``."""
    patcher = patch("pagecast.core.renderer.async_playwright")
    mock_pw = patcher.start()
    mock_pw_instance = MagicMock()
    mock_pw_instance.start = AsyncMock(return_value=mock_playwright)
    mock_pw.return_value = mock_pw_instance
    return patcher


def _handlers(mock_obj, event):
    """Return the callbacks registered with ``mock_obj.on(event, ...)``."""
    return [c.args[1] for c in mock_obj.on.call_args_list if c.args[0] == event]


@pytest_asyncio.fixture
async def started_renderer(mock_playwright):
    """A RendererHandle started against mocked Playwright."""
    patcher = _patch_playwright(mock_playwright)
    renderer = RendererHandle(selector="#container")
    await renderer.start()
    yield renderer
    patcher.stop()


class TestCaptureRegion:
    """Tests for CaptureRegion."""

    def test_from_box(self):
        """Test building a region from a bounding box."""
        region = CaptureRegion.from_box({"x": 1, "y": 2, "width": 3, "height": 4})
        assert region == CaptureRegion(x=1, y=2, width=3, height=4)

    def test_clamp_inside_viewport(self):
        """Test a fully visible region is unchanged."""
        region = CaptureRegion(x=10, y=20, width=400, height=300)
        assert region.clamp(1280, 720) == region

    def test_clamp_partially_visible(self):
        """Test a region crossing the viewport edge is clipped."""
        region = CaptureRegion(x=-10, y=600, width=200, height=300)
        clamped = region.clamp(1280, 720)
        assert clamped == CaptureRegion(x=0, y=600, width=190, height=120)

    def test_clamp_offscreen(self):
        """Test a region outside the viewport is rejected."""
        region = CaptureRegion(x=2000, y=0, width=100, height=100)
        with pytest.raises(RenderLoadError, match="no visible area"):
            region.clamp(1280, 720)

    def test_to_clip(self):
        """Test conversion to a screenshot clip."""
        region = CaptureRegion(x=1, y=2, width=3, height=4)
        assert region.to_clip() == {"x": 1, "y": 2, "width": 3, "height": 4}


class TestRendererHandleInit:
    """Tests for RendererHandle initialization."""

    def test_default_init(self):
        """Test default initialization values."""
        renderer = RendererHandle()

        assert renderer.selector == "#container"
        assert renderer.headless is True
        assert renderer.jpeg_quality == 80
        assert renderer.launch_options == {}
        assert renderer.region is None
        assert renderer.has_open_page is False

    def test_from_config(self):
        """Test building a renderer from PageCastConfig."""
        config = PageCastConfig(
            target_selector=".radar",
            viewport_width=800,
            viewport_height=600,
            navigation_timeout_ms=5000,
        )
        renderer = RendererHandle.from_config(config)

        assert renderer.selector == ".radar"
        assert renderer.viewport_width == 800
        assert renderer.viewport_height == 600
        assert renderer.navigation_timeout_ms == 5000


class TestRendererHandleStart:
    """Tests for RendererHandle.start() and stop()."""

    @pytest.mark.asyncio
    async def test_start_opens_page_with_viewport(self, mock_playwright, mock_browser):
        """Test start launches chromium and opens a page with the viewport."""
        patcher = _patch_playwright(mock_playwright)
        try:
            renderer = RendererHandle(viewport_width=800, viewport_height=600, headless=False)
            await renderer.start()
        finally:
            patcher.stop()

        mock_playwright.chromium.launch.assert_awaited_once_with(headless=False)
        mock_browser.new_page.assert_awaited_once_with(viewport={"width": 800, "height": 600})
        assert renderer.has_open_page is True

    @pytest.mark.asyncio
    async def test_start_failure_raises_lifecycle_fault(self, mock_playwright):
        """Test a launch failure surfaces as RendererLifecycleFault."""
        mock_playwright.chromium.launch = AsyncMock(side_effect=Exception("no sandbox"))
        patcher = _patch_playwright(mock_playwright)
        try:
            renderer = RendererHandle()
            with pytest.raises(RendererLifecycleFault, match="no sandbox"):
                await renderer.start()
        finally:
            patcher.stop()

    @pytest.mark.asyncio
    async def test_stop_closes_everything(self, started_renderer, mock_page, mock_browser, mock_playwright):
        """Test stop closes page, browser and Playwright."""
        await started_renderer.stop()

        mock_page.close.assert_awaited_once()
        mock_browser.close.assert_awaited_once()
        mock_playwright.stop.assert_awaited_once()
        assert started_renderer.has_open_page is False

    @pytest.mark.asyncio
    async def test_stop_without_start(self):
        """Test stop tolerates a renderer that never started."""
        renderer = RendererHandle()
        await renderer.stop()
        assert renderer.has_open_page is False


class TestRendererHandleLoad:
    """Tests for RendererHandle.load()."""

    @pytest.mark.asyncio
    async def test_load_resolves_region(self, started_renderer, mock_page):
        """Test load navigates and resolves the element region."""
        region = await started_renderer.load("https://example.com")

        mock_page.goto.assert_awaited_once_with(
            "https://example.com", wait_until="domcontentloaded", timeout=30000
        )
        mock_page.query_selector.assert_awaited_once_with("#container")
        assert region == CaptureRegion(x=10, y=20, width=400, height=300)
        assert started_renderer.region == region

    @pytest.mark.asyncio
    async def test_load_missing_element(self, started_renderer, mock_page):
        """Test a missing element raises RenderLoadError."""
        mock_page.query_selector = AsyncMock(return_value=None)

        with pytest.raises(RenderLoadError, match="Element not found"):
            await started_renderer.load("https://example.com")
        assert started_renderer.region is None

    @pytest.mark.asyncio
    async def test_load_no_bounding_box(self, started_renderer, mock_page):
        """Test an element without a box raises RenderLoadError."""
        element = MagicMock()
        element.bounding_box = AsyncMock(return_value=None)
        mock_page.query_selector = AsyncMock(return_value=element)

        with pytest.raises(RenderLoadError, match="Bounding box not found"):
            await started_renderer.load("https://example.com")

    @pytest.mark.asyncio
    async def test_load_zero_size_box(self, started_renderer, mock_page):
        """Test a zero-size element raises RenderLoadError."""
        element = MagicMock()
        element.bounding_box = AsyncMock(
            return_value={"x": 0, "y": 0, "width": 0, "height": 100}
        )
        mock_page.query_selector = AsyncMock(return_value=element)

        with pytest.raises(RenderLoadError):
            await started_renderer.load("https://example.com")

    @pytest.mark.asyncio
    async def test_load_navigation_failure(self, started_renderer, mock_page):
        """Test a navigation timeout raises RenderLoadError."""
        mock_page.goto = AsyncMock(side_effect=Exception("Timeout 30000ms exceeded"))

        with pytest.raises(RenderLoadError, match="Timeout"):
            await started_renderer.load("https://example.com")

    @pytest.mark.asyncio
    async def test_load_without_page(self):
        """Test loading without an open page raises RenderLoadError."""
        renderer = RendererHandle()
        with pytest.raises(RenderLoadError, match="No open page"):
            await renderer.load("https://example.com")


class TestRendererHandleCapture:
    """Tests for RendererHandle.capture_frame()."""

    @pytest.mark.asyncio
    async def test_capture_uses_region_clip(self, started_renderer, mock_page):
        """Test capture takes a JPEG clipped to the region."""
        await started_renderer.load("https://example.com")

        data = await started_renderer.capture_frame()

        assert data == b"\xff\xd8jpeg\xff\xd9"
        mock_page.screenshot.assert_awaited_once_with(
            type="jpeg",
            quality=80,
            clip={"x": 10, "y": 20, "width": 400, "height": 300},
        )

    @pytest.mark.asyncio
    async def test_capture_without_region(self, started_renderer):
        """Test capture before load raises RenderCaptureError."""
        with pytest.raises(RenderCaptureError, match="No capture region"):
            await started_renderer.capture_frame()

    @pytest.mark.asyncio
    async def test_capture_closed_page(self, started_renderer, mock_page):
        """Test capture on a closed page raises RenderCaptureError."""
        await started_renderer.load("https://example.com")
        mock_page.is_closed.return_value = True

        with pytest.raises(RenderCaptureError, match="Page is closed"):
            await started_renderer.capture_frame()

    @pytest.mark.asyncio
    async def test_capture_screenshot_failure(self, started_renderer, mock_page):
        """Test a screenshot fault raises RenderCaptureError."""
        await started_renderer.load("https://example.com")
        mock_page.screenshot = AsyncMock(side_effect=Exception("Target closed"))

        with pytest.raises(RenderCaptureError, match="Target closed"):
            await started_renderer.capture_frame()


class TestRendererHandleReplacePage:
    """Tests for RendererHandle.replace_page()."""

    @pytest.mark.asyncio
    async def test_replace_page_same_browser(self, started_renderer, mock_page, mock_browser, mock_playwright):
        """Test replace_page opens a new page on the same browser."""
        await started_renderer.load("https://example.com")

        await started_renderer.replace_page()

        mock_page.close.assert_awaited_once()
        assert mock_browser.new_page.await_count == 2
        assert mock_playwright.chromium.launch.await_count == 1
        assert started_renderer.region is None

    @pytest.mark.asyncio
    async def test_replace_page_relaunches_disconnected_browser(
        self, started_renderer, mock_browser, mock_playwright
    ):
        """Test replace_page relaunches a disconnected browser."""
        mock_browser.is_connected.return_value = False

        await started_renderer.replace_page()

        assert mock_playwright.chromium.launch.await_count == 2


class TestRendererHandleEvents:
    """Tests for renderer fault event publishing."""

    @pytest.mark.asyncio
    async def test_page_crash_published_as_error(self, started_renderer, mock_page):
        """Test a page crash notifies subscribers with ERROR."""
        events = []
        started_renderer.subscribe(events.append)

        for handler in _handlers(mock_page, "crash"):
            handler(mock_page)

        assert events == [RendererEvent.ERROR]

    @pytest.mark.asyncio
    async def test_page_close_published(self, started_renderer, mock_page):
        """Test an external page close notifies subscribers with CLOSED."""
        events = []
        started_renderer.subscribe(events.append)

        for handler in _handlers(mock_page, "close"):
            handler(mock_page)

        assert events == [RendererEvent.CLOSED]

    @pytest.mark.asyncio
    async def test_browser_disconnect_published(self, started_renderer, mock_browser):
        """Test a browser disconnect notifies subscribers with DISCONNECTED."""
        events = []
        started_renderer.subscribe(events.append)

        for handler in _handlers(mock_browser, "disconnected"):
            handler(mock_browser)

        assert events == [RendererEvent.DISCONNECTED]

    @pytest.mark.asyncio
    async def test_events_from_replaced_page_ignored(self, started_renderer, mock_page, mock_browser):
        """Test events of a discarded page are not published."""
        new_page = MagicMock()
        new_page.is_closed.return_value = False
        mock_browser.new_page = AsyncMock(return_value=new_page)
        await started_renderer.replace_page()

        events = []
        started_renderer.subscribe(events.append)
        for handler in _handlers(mock_page, "close"):
            handler(mock_page)

        assert events == []

    @pytest.mark.asyncio
    async def test_no_events_while_stopping(self, started_renderer, mock_page):
        """Test the close triggered by stop() is not published."""
        events = []
        started_renderer.subscribe(events.append)
        await started_renderer.stop()

        for handler in _handlers(mock_page, "close"):
            handler(mock_page)

        assert events == []

    @pytest.mark.asyncio
    async def test_listener_failure_does_not_propagate(self, started_renderer, mock_page):
        """Test a failing listener does not stop other listeners."""
        events = []

        def broken(event):
            raise RuntimeError("boom")

        started_renderer.subscribe(broken)
        started_renderer.subscribe(events.append)

        for handler in _handlers(mock_page, "crash"):
            handler(mock_page)

        assert events == [RendererEvent.ERROR]
