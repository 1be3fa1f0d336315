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

"""Renderer failure detection and recovery.

The supervisor turns renderer fault events and capture failures into at most
one recovery at a time:

    HEALTHY --request_recovery()--> RECOVERING --(success or failure)--> HEALTHY

While RECOVERING, further requests are ignored. A failed recovery is logged
and clears the flag so the next fault can try again; it is never fatal.
"""

from __future__ import annotations

import asyncio
import contextlib
import time
from enum import Enum
from typing import Any, Dict, Optional

from pagecast.core.renderer import CaptureRegion, RendererEvent, RendererHandle
from pagecast.exceptions import RenderLoadError
from pagecast.utils.logger import logger


class RendererHealth(str, Enum):
    """Health state of the renderer."""

    HEALTHY = "healthy"
    RECOVERING = "recovering"


class RendererSupervisor:
    """Serialized, debounced recovery of the renderer page.

    Recovery procedure: wait ``settle_delay``, discard the page, open a new
    page on the same browser, reload ``url`` and re-resolve the capture
    region.

    The frame producer calls ``wait_healthy()`` before each capture, so page
    access by the producer and by recovery never overlap.

    Example:
        >>> supervisor = RendererSupervisor(renderer, url, settle_delay=1.0)
        >>> await supervisor.initial_load()
        >>> supervisor.request_recovery("capture failed")
        True
        >>> await supervisor.wait_healthy()
    """

    def __init__(
        self,
        renderer: RendererHandle,
        url: str,
        settle_delay: float = 1.0,
    ) -> None:
        self.renderer = renderer
        self.url = url
        self.settle_delay = settle_delay

        self._recovering = False
        self._healthy = asyncio.Event()
        self._healthy.set()
        self._recovery_task: Optional[asyncio.Task] = None
        self._stopped = False

        self.recoveries_attempted = 0
        self.recoveries_succeeded = 0
        self.requests_ignored = 0
        self.last_reason: Optional[str] = None
        self.last_recovery_at: Optional[float] = None

        renderer.subscribe(self._on_renderer_event)

    @property
    def state(self) -> RendererHealth:
        return RendererHealth.RECOVERING if self._recovering else RendererHealth.HEALTHY

    @property
    def is_recovering(self) -> bool:
        return self._recovering

    async def initial_load(self) -> Optional[CaptureRegion]:
        """Load the target at process start. Failure is logged, not raised."""
        try:
            return await self.renderer.load(self.url)
        except RenderLoadError as e:
            logger.error(f"[SUPERVISOR] Failed to load target page: {e}")
            return None

    async def ensure_loaded(self) -> CaptureRegion:
        """Make sure a capture region is resolved, loading the target if needed.

        Raises:
            RenderLoadError: If the target cannot be loaded
        """
        if self._recovering:
            await self.wait_healthy()

        region = self.renderer.region
        if region is not None:
            return region

        logger.info("[SUPERVISOR] No capture region, loading target page")
        if not self.renderer.has_open_page:
            try:
                await self.renderer.replace_page()
            except Exception as e:
                raise RenderLoadError(f"Failed to open a new page: {e}") from e
        return await self.renderer.load(self.url)

    def request_recovery(self, reason: str) -> bool:
        """Request a renderer recovery.

        Args:
            reason: Human-readable trigger description

        Returns:
            True if a recovery was scheduled, False if one is already running
        """
        if self._stopped:
            return False
        if self._recovering:
            self.requests_ignored += 1
            logger.debug(f"[SUPERVISOR] Recovery already in progress, ignoring: {reason}")
            return False

        self._recovering = True
        self._healthy.clear()
        self.last_reason = reason
        logger.warning(f"[SUPERVISOR] Recovery requested: {reason}")
        self._recovery_task = asyncio.create_task(self._recover(), name="renderer-recovery")
        return True

    async def wait_healthy(self) -> None:
        """Suspend until no recovery is in progress."""
        await self._healthy.wait()

    async def stop(self) -> None:
        """Cancel any in-flight recovery and refuse new ones."""
        self._stopped = True
        task = self._recovery_task
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._recovery_task = None
        # A task cancelled before its first step never reaches its finally block
        self._recovering = False
        self._healthy.set()

    def _on_renderer_event(self, event: RendererEvent) -> None:
        self.request_recovery(f"renderer {event.value}")

    async def _recover(self) -> None:
        self.recoveries_attempted += 1
        try:
            # Avoid thrashing on rapid repeated faults
            await asyncio.sleep(self.settle_delay)
            logger.info("[SUPERVISOR] Restarting renderer page...")
            await self.renderer.replace_page()
            await self.renderer.load(self.url)
            self.recoveries_succeeded += 1
            logger.info(
                f"[SUPERVISOR] Renderer recovered "
                f"({self.recoveries_succeeded}/{self.recoveries_attempted} recoveries succeeded)"
            )
        except asyncio.CancelledError:
            logger.debug("[SUPERVISOR] Recovery cancelled")
            raise
        except Exception as e:
            logger.error(f"[SUPERVISOR] Failed to restart renderer page: {e}")
        finally:
            self.last_recovery_at = time.time()
            self._recovering = False
            self._healthy.set()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        region = self.renderer.region
        return {
            "state": self.state.value,
            "recoveries_attempted": self.recoveries_attempted,
            "recoveries_succeeded": self.recoveries_succeeded,
            "requests_ignored": self.requests_ignored,
            "last_reason": self.last_reason,
            "last_recovery_at": self.last_recovery_at,
            "capture_region": region.to_clip() if region else None,
        }
