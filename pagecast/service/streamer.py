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
Service object wiring the streaming pipeline together.

StreamerService is constructed once at application startup and owns the
renderer, its supervisor, the frame producer and the stream controller as
exclusive fields. HTTP handlers receive it from ``app.state`` rather than
reaching for module-level globals.
"""

from __future__ import annotations

import time
from pathlib import Path
from typing import Any, Dict, Optional

from pagecast.config import PageCastConfig
from pagecast.core.encoder import EncoderProcess
from pagecast.core.lifecycle import EncoderFactory, StreamController
from pagecast.core.producer import FrameProducer
from pagecast.core.renderer import RendererHandle
from pagecast.core.supervisor import RendererSupervisor
from pagecast.service.delivery import resolve_segment, wait_for_segments
from pagecast.utils.logger import logger


class StreamerService:
    """The single shared stream served to every client.

    Example:
        >>> service = StreamerService(PageCastConfig())
        >>> await service.start()
        >>> manifest = await service.prepare_manifest()
        >>> await service.stop()
    """

    def __init__(
        self,
        config: PageCastConfig,
        renderer: Optional[RendererHandle] = None,
        encoder_factory: EncoderFactory = EncoderProcess,
    ) -> None:
        self.config = config
        self.renderer = renderer or RendererHandle.from_config(config)
        self.supervisor = RendererSupervisor(
            self.renderer,
            config.target_url,
            settle_delay=config.recovery_settle_delay,
        )
        self.producer = FrameProducer(
            self.renderer,
            self.supervisor,
            priming_frames=config.priming_frames,
        )
        self.controller = StreamController(
            self.supervisor,
            self.producer,
            config.stream_dir,
            config.encoder,
            inactivity_timeout=config.inactivity_timeout,
            encoder_factory=encoder_factory,
        )
        self.started_at: float = 0.0

    @property
    def stream_dir(self) -> Path:
        return Path(self.config.stream_dir)

    @property
    def manifest_path(self) -> Path:
        return Path(self.config.manifest_path)

    async def start(self) -> None:
        """Launch the browser and load the target page.

        Browser launch failures propagate and abort startup. A failed page
        load is only logged; the next manifest request retries it.
        """
        logger.info("[STREAMER] Starting PageCast streamer...")
        self.stream_dir.mkdir(parents=True, exist_ok=True)
        await self.renderer.start()
        await self.supervisor.initial_load()
        self.started_at = time.time()
        logger.info(f"[STREAMER] Browser ready, streaming {self.config.target_selector}")

    async def stop(self) -> None:
        """Stop the stream session, any recovery and the browser."""
        logger.info("[STREAMER] Shutting down PageCast streamer...")
        await self.controller.shutdown()
        await self.supervisor.stop()
        await self.renderer.stop()
        logger.info("[STREAMER] PageCast streamer shut down")

    async def prepare_manifest(self) -> Path:
        """Handle a manifest request: keep alive, ensure running, gate on readiness.

        Returns:
            Path of the manifest file (which may not exist yet)

        Raises:
            RenderLoadError: If the target page cannot be loaded
            EncoderFault: If the encoder fails to start
        """
        self.controller.touch()
        await self.controller.ensure_running()
        await wait_for_segments(
            self.stream_dir,
            min_segments=self.config.min_ready_segments,
            max_wait=self.config.manifest_max_wait,
            poll_interval=self.config.manifest_poll_interval,
            placeholder=self.config.placeholder_segment,
        )
        return self.manifest_path

    def segment_requested(self, name: str) -> Optional[Path]:
        """Handle a segment request: keep the session alive and look the file up."""
        logger.debug(f"[STREAMER] TS segment requested: {name}")
        self.controller.touch()
        return resolve_segment(self.stream_dir, name)

    def status(self) -> Dict[str, Any]:
        """Stream and renderer status for the health endpoint."""
        uptime = time.time() - self.started_at if self.started_at else 0.0
        return {
            "uptime_seconds": uptime,
            "target_url": self.config.target_url,
            "target_selector": self.config.target_selector,
            **self.controller.status(),
        }
