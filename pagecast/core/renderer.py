# Copyright 2026 Firefly Software Solutions Inc
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Browser renderer handle for PageCast.

This module provides the RendererHandle class which owns a single live
Playwright page. It handles browser launching, page navigation, resolution of
the capture region from a target element, frame capture, and re-publishing of
page/browser fault events to subscribers.

The handle is not safe for concurrent callers: exactly one frame producer
captures at a time, and recovery replaces the page only while capture is
suspended.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

from playwright.async_api import Browser, Page, async_playwright

from pagecast.exceptions import RenderCaptureError, RenderLoadError, RendererLifecycleFault
from pagecast.utils.logger import logger

if TYPE_CHECKING:
    from pagecast.config import PageCastConfig


class RendererEvent(str, enum.Enum):
    """Fault notifications published by the renderer."""

    ERROR = "error"
    CLOSED = "closed"
    DISCONNECTED = "disconnected"


RendererListener = Callable[[RendererEvent], None]


@dataclass(frozen=True)
class CaptureRegion:
    """Screen rectangle of the target element, in CSS pixels."""

    x: float
    y: float
    width: float
    height: float

    @classmethod
    def from_box(cls, box: Dict[str, float]) -> "CaptureRegion":
        return cls(x=box["x"], y=box["y"], width=box["width"], height=box["height"])

    def clamp(self, viewport_width: float, viewport_height: float) -> "CaptureRegion":
        """Return the part of the region inside the viewport.

        Raises:
            RenderLoadError: If no part of the region is visible
        """
        left = max(0.0, self.x)
        top = max(0.0, self.y)
        right = min(float(viewport_width), self.x + self.width)
        bottom = min(float(viewport_height), self.y + self.height)
        if right <= left or bottom <= top:
            raise RenderLoadError(
                f"Capture region {self.to_clip()} has no visible area in "
                f"viewport {viewport_width}x{viewport_height}"
            )
        return CaptureRegion(x=left, y=top, width=right - left, height=bottom - top)

    def to_clip(self) -> Dict[str, float]:
        """Playwright ``clip`` argument for ``page.screenshot``."""
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}


class RendererHandle:
    """
    Owns the browser and the single page whose element is streamed.

    This class handles:
    - Browser launching and page creation with a fixed viewport
    - Navigation with an explicit timeout and capture region resolution
    - JPEG frame capture clipped to the capture region
    - Page replacement during recovery
    - Fault event fan-out to subscribers (observer interface)

    Example:
        >>> renderer = RendererHandle(selector="#container")
        >>> await renderer.start()
        >>> region = await renderer.load("https://example.com")
        >>> frame = await renderer.capture_frame()
        >>> await renderer.stop()
    """

    def __init__(
        self,
        selector: str = "#container",
        viewport_width: int = 1280,
        viewport_height: int = 720,
        headless: bool = True,
        navigation_timeout_ms: int = 30000,
        wait_until: str = "domcontentloaded",
        jpeg_quality: int = 80,
        **launch_options: Any,
    ) -> None:
        """
        Initialize the renderer with configuration.

        Args:
            selector: CSS selector of the element whose region is captured
            viewport_width: Page viewport width in pixels
            viewport_height: Page viewport height in pixels
            headless: Whether to run the browser without a visible window
            navigation_timeout_ms: Timeout for ``page.goto``; a hung navigation
                surfaces as RenderLoadError instead of blocking forever
            wait_until: Navigation wait policy for ``page.goto``
            jpeg_quality: JPEG quality of captured frames (1-100)
            **launch_options: Additional Playwright launch options
        """
        self.selector = selector
        self.viewport_width = viewport_width
        self.viewport_height = viewport_height
        self.headless = headless
        self.navigation_timeout_ms = navigation_timeout_ms
        self.wait_until = wait_until
        self.jpeg_quality = jpeg_quality
        self.launch_options = launch_options

        self._playwright = None
        self._browser: Optional[Browser] = None
        self._page: Optional[Page] = None
        self._region: Optional[CaptureRegion] = None
        self._listeners: List[RendererListener] = []
        self._stopping = False

    @classmethod
    def from_config(cls, config: "PageCastConfig") -> "RendererHandle":
        return cls(
            selector=config.target_selector,
            viewport_width=config.viewport_width,
            viewport_height=config.viewport_height,
            headless=config.headless,
            navigation_timeout_ms=config.navigation_timeout_ms,
            wait_until=config.wait_until,
            jpeg_quality=config.jpeg_quality,
        )

    @property
    def region(self) -> Optional[CaptureRegion]:
        """Capture region resolved by the last successful ``load()``."""
        return self._region

    @property
    def has_open_page(self) -> bool:
        return self._page is not None and not self._page.is_closed()

    def subscribe(self, listener: RendererListener) -> None:
        """Register a callback for renderer fault events."""
        self._listeners.append(listener)

    async def start(self) -> None:
        """
        Launch Playwright, the browser and the initial page.

        Raises:
            RendererLifecycleFault: If the browser fails to start
        """
        try:
            logger.info(f"[RENDERER] Starting chromium browser (headless={self.headless})")
            self._playwright = await async_playwright().start()
            await self._launch_browser()
            self._page = await self._open_page()
            logger.info("[RENDERER] Browser started successfully")
        except RendererLifecycleFault:
            raise
        except Exception as e:
            logger.error(f"[RENDERER] Failed to start browser: {e}")
            raise RendererLifecycleFault(f"Failed to start browser: {e}") from e

    async def stop(self) -> None:
        """Close the page, the browser and Playwright. Tolerates partial state."""
        self._stopping = True
        logger.info("[RENDERER] Stopping browser")
        page, self._page = self._page, None
        self._region = None
        try:
            if page is not None and not page.is_closed():
                await page.close()
            if self._browser is not None:
                await self._browser.close()
        except Exception as e:
            logger.warning(f"[RENDERER] Error closing browser: {e}")
        finally:
            self._browser = None
            if self._playwright is not None:
                await self._playwright.stop()
                self._playwright = None
        logger.info("[RENDERER] Browser stopped")

    async def load(self, url: str) -> CaptureRegion:
        """
        Navigate to ``url`` and resolve the capture region of the target element.

        Args:
            url: Page to render

        Returns:
            The resolved CaptureRegion

        Raises:
            RenderLoadError: If navigation fails, the element is missing, or
                it has no measurable on-screen box
        """
        page = self._page
        if page is None or page.is_closed():
            raise RenderLoadError("No open page to load")

        self._region = None
        try:
            await page.goto(url, wait_until=self.wait_until, timeout=self.navigation_timeout_ms)
            element = await page.query_selector(self.selector)
            if element is None:
                raise RenderLoadError(f"Element not found: {self.selector}")
            box = await element.bounding_box()
        except RenderLoadError:
            raise
        except Exception as e:
            raise RenderLoadError(f"Failed to load target page: {e}") from e

        if not box or box["width"] <= 0 or box["height"] <= 0:
            raise RenderLoadError(f"Bounding box not found for {self.selector}")

        viewport = page.viewport_size or {
            "width": self.viewport_width,
            "height": self.viewport_height,
        }
        region = CaptureRegion.from_box(box).clamp(viewport["width"], viewport["height"])
        self._region = region
        logger.info(
            f"[RENDERER] Target loaded, capture region "
            f"{region.width:.0f}x{region.height:.0f}+{region.x:.0f}+{region.y:.0f}"
        )
        return region

    async def capture_frame(self) -> bytes:
        """
        Capture one JPEG frame clipped to the capture region.

        Returns:
            Encoded image bytes

        Raises:
            RenderCaptureError: On any renderer-side fault
        """
        page = self._page
        region = self._region
        if page is None or page.is_closed():
            raise RenderCaptureError("Page is closed")
        if region is None:
            raise RenderCaptureError("No capture region resolved")
        try:
            return await page.screenshot(
                type="jpeg",
                quality=self.jpeg_quality,
                clip=region.to_clip(),
            )
        except Exception as e:
            raise RenderCaptureError(f"Screenshot failed: {e}") from e

    async def replace_page(self) -> None:
        """
        Discard the current page and open a new one on the same browser.

        The browser is relaunched only if it has disconnected. The capture
        region is cleared until the next ``load()``.
        """
        old_page, self._page = self._page, None
        self._region = None
        if old_page is not None and not old_page.is_closed():
            try:
                await old_page.close()
            except Exception as e:
                logger.debug(f"[RENDERER] Error closing old page: {e}")

        if self._browser is None or not self._browser.is_connected():
            logger.warning("[RENDERER] Browser disconnected, relaunching")
            await self._launch_browser()
        self._page = await self._open_page()

    async def _launch_browser(self) -> None:
        if self._playwright is None:
            raise RendererLifecycleFault("Playwright not started. Call start() first.")
        browser = await self._playwright.chromium.launch(
            headless=self.headless, **self.launch_options
        )
        browser.on("disconnected", lambda *_: self._publish(RendererEvent.DISCONNECTED, None))
        self._browser = browser

    async def _open_page(self) -> Page:
        page = await self._browser.new_page(
            viewport={"width": self.viewport_width, "height": self.viewport_height}
        )
        page.on("crash", lambda *_: self._publish(RendererEvent.ERROR, page))
        page.on("close", lambda *_: self._publish(RendererEvent.CLOSED, page))
        return page

    def _publish(self, event: RendererEvent, page: Optional[Page]) -> None:
        if self._stopping:
            return
        # Events from a page we already replaced are stale
        if page is not None and page is not self._page:
            return
        logger.warning(f"[RENDERER] Renderer event: {event.value}")
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.error(f"[RENDERER] Listener failed for {event.value}: {e}")
