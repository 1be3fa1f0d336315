# Copyright 2026 Firefly Software Solutions Inc
# SPDX-License-Identifier: Apache-2.0

"""Shared fixtures and test doubles for PageCast tests."""

import asyncio
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from pagecast.config import PageCastConfig
from pagecast.core.encoder import EncoderConfig
from pagecast.core.renderer import CaptureRegion, RendererEvent
from pagecast.exceptions import EncoderFault, RenderCaptureError


class FakeRenderer:
    """In-memory stand-in for RendererHandle."""

    def __init__(self, region: Optional[CaptureRegion] = None) -> None:
        self.loaded_region = region or CaptureRegion(x=0, y=0, width=640, height=360)
        self.region: Optional[CaptureRegion] = None
        self.has_open_page = True
        self.listeners = []
        self.load_calls: List[str] = []
        self.replace_calls = 0
        self.capture_calls = 0
        self.load_error: Optional[Exception] = None
        self.capture_error: Optional[Exception] = None
        self.capture_delay = 0.0
        self.load_delay = 0.0
        self.started = False
        self.stopped = False

    def subscribe(self, listener) -> None:
        self.listeners.append(listener)

    def emit(self, event: RendererEvent) -> None:
        for listener in list(self.listeners):
            listener(event)

    async def start(self) -> None:
        self.started = True

    async def stop(self) -> None:
        self.stopped = True

    async def load(self, url: str) -> CaptureRegion:
        self.load_calls.append(url)
        if self.load_delay:
            await asyncio.sleep(self.load_delay)
        if self.load_error is not None:
            raise self.load_error
        self.region = self.loaded_region
        return self.region

    async def capture_frame(self) -> bytes:
        self.capture_calls += 1
        if self.capture_delay:
            await asyncio.sleep(self.capture_delay)
        if self.capture_error is not None:
            raise self.capture_error
        if self.region is None:
            raise RenderCaptureError("No capture region resolved")
        return b"\xff\xd8frame%d\xff\xd9" % self.capture_calls

    async def replace_page(self) -> None:
        self.replace_calls += 1
        self.region = None
        self.has_open_page = True


class FakeEncoder:
    """In-memory stand-in for EncoderProcess.

    Every instance is recorded in ``FakeEncoder.instances`` so tests can
    count how many encoders were ever created.
    """

    instances: List["FakeEncoder"] = []
    fail_start: Optional[Exception] = None

    def __init__(self, config: EncoderConfig, on_exit=None) -> None:
        self.config = config
        self.on_exit = on_exit
        self.frames: List[bytes] = []
        self.output_dir = None
        self.returncode: Optional[int] = None
        self.stderr_tail = ""
        self.started = False
        self.stopped = False
        self.stop_calls = 0
        self.start_delay = 0.0
        FakeEncoder.instances.append(self)

    @property
    def is_running(self) -> bool:
        return self.started and not self.stopped and self.returncode is None

    async def start(self, output_dir) -> None:
        if FakeEncoder.fail_start is not None:
            raise FakeEncoder.fail_start
        if self.start_delay:
            await asyncio.sleep(self.start_delay)
        self.output_dir = output_dir
        self.started = True

    async def write_frame(self, data: bytes) -> None:
        if not self.is_running:
            raise EncoderFault("Encoder input is closed")
        self.frames.append(data)

    async def stop(self) -> None:
        self.stop_calls += 1
        self.stopped = True

    async def crash(self, returncode: int = 1) -> None:
        """Simulate an unexpected encoder exit."""
        self.returncode = returncode
        fault = EncoderFault(
            f"FFmpeg exited unexpectedly (exit code: {returncode})",
            returncode=returncode,
        )
        if self.on_exit is not None:
            await self.on_exit(fault)

    def to_dict(self) -> Dict[str, Any]:
        return {"running": self.is_running, "returncode": self.returncode}


@pytest.fixture(autouse=True)
def reset_fake_encoder():
    """Clear FakeEncoder class state between tests."""
    FakeEncoder.instances = []
    FakeEncoder.fail_start = None
    yield
    FakeEncoder.instances = []
    FakeEncoder.fail_start = None


@pytest.fixture
def fake_renderer():
    """A FakeRenderer with a resolvable target."""
    return FakeRenderer()


@pytest.fixture
def stream_dir(tmp_path):
    """Empty stream output directory."""
    path = tmp_path / "hls-stream"
    path.mkdir()
    return path


@pytest.fixture
def test_config(stream_dir):
    """Configuration with short timings for tests."""
    return PageCastConfig(
        target_url="https://example.com/weather",
        stream_dir=str(stream_dir),
        inactivity_timeout=1.0,
        priming_frames=5,
        recovery_settle_delay=0.01,
        manifest_max_wait=0.2,
        manifest_poll_interval=0.01,
        encoder=EncoderConfig(ffmpeg_path="/usr/bin/ffmpeg"),
    )


@pytest.fixture
def mock_page():
    """Mock Playwright page with a resolvable #container element."""
    page = MagicMock()
    page.is_closed.return_value = False
    page.viewport_size = {"width": 1280, "height": 720}
    page.goto = AsyncMock()
    page.close = AsyncMock()
    page.screenshot = AsyncMock(return_value=b"\xff\xd8jpeg\xff\xd9")

    element = MagicMock()
    element.bounding_box = AsyncMock(
        return_value={"x": 10, "y": 20, "width": 400, "height": 300}
    )
    page.query_selector = AsyncMock(return_value=element)
    return page


@pytest.fixture
def mock_browser(mock_page):
    """Mock Playwright browser opening ``mock_page``."""
    browser = MagicMock()
    browser.is_connected.return_value = True
    browser.new_page = AsyncMock(return_value=mock_page)
    browser.close = AsyncMock()
    return browser


@pytest.fixture
def mock_playwright(mock_browser):
    """Mock Playwright instance launching ``mock_browser``."""
    playwright = MagicMock()
    playwright.chromium.launch = AsyncMock(return_value=mock_browser)
    playwright.stop = AsyncMock()
    return playwright


@pytest.fixture
def fake_encoder_factory():
    """FakeEncoder class, used as the controller's encoder factory."""
    return FakeEncoder
