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

"""Frame producer loop.

Drives ``RendererHandle.capture_frame()`` as fast as the renderer allows and
hands every frame to the session's encoder input. Backpressure comes only
from awaiting each capture and each pipe drain; the encoder paces output by
wall clock, so no artificial delay is inserted.

A priming phase sends a burst of back-to-back frames when a session starts so
the encoder produces its first segments quickly.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict

from pagecast.core.renderer import RendererHandle
from pagecast.core.supervisor import RendererSupervisor
from pagecast.exceptions import EncoderFault, RenderCaptureError
from pagecast.utils.logger import logger

if TYPE_CHECKING:
    from pagecast.core.lifecycle import StreamSession


@dataclass
class Frame:
    """One captured image, stamped with its wall-clock capture time."""

    data: bytes
    sequence: int
    captured_at: float = field(default_factory=time.time)


@dataclass
class ProducerStats:
    """Counters for the frame producer."""

    frames_captured: int = 0
    frames_sent: int = 0
    frames_dropped: int = 0
    capture_errors: int = 0
    last_frame_at: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "frames_captured": self.frames_captured,
            "frames_sent": self.frames_sent,
            "frames_dropped": self.frames_dropped,
            "capture_errors": self.capture_errors,
            "last_frame_at": self.last_frame_at,
        }


class FrameProducer:
    """Capture loop feeding the encoder of the current stream session.

    ``run()`` is started as a task per session and ends when the session is
    marked inactive or the task is cancelled. A capture failure asks the
    supervisor for a recovery and ends the iteration; the session itself
    keeps running.
    """

    def __init__(
        self,
        renderer: RendererHandle,
        supervisor: RendererSupervisor,
        priming_frames: int = 100,
    ) -> None:
        self.renderer = renderer
        self.supervisor = supervisor
        self.priming_frames = priming_frames
        self.stats = ProducerStats()
        self._sequence = 0

    async def run(self, session: "StreamSession") -> None:
        """Produce frames for ``session`` until it stops."""
        self.stats = ProducerStats()
        logger.info(
            f"[PRODUCER] Capture loop started for session {session.session_id} "
            f"(priming {self.priming_frames} frames)"
        )
        try:
            await self._prime(session)
            while session.active:
                await self._cycle(session)
                # Single cooperative yield per iteration, no pacing delay
                await asyncio.sleep(0)
        except asyncio.CancelledError:
            logger.debug(f"[PRODUCER] Capture loop cancelled for session {session.session_id}")
            raise
        finally:
            logger.info(
                f"[PRODUCER] Capture loop stopped for session {session.session_id} "
                f"(sent: {self.stats.frames_sent}, dropped: {self.stats.frames_dropped}, "
                f"capture errors: {self.stats.capture_errors})"
            )

    async def _prime(self, session: "StreamSession") -> None:
        for _ in range(self.priming_frames):
            if not session.active:
                return
            try:
                frame = await self._capture()
            except RenderCaptureError as e:
                self.stats.capture_errors += 1
                logger.error(f"[PRODUCER] Initial screenshot error: {e}")
                self.supervisor.request_recovery(f"capture failed during priming: {e}")
                return
            await self._handoff(session, frame)

    async def _cycle(self, session: "StreamSession") -> None:
        if self.supervisor.is_recovering:
            await self.supervisor.wait_healthy()
            if not session.active:
                return

        try:
            frame = await self._capture()
        except RenderCaptureError as e:
            self.stats.capture_errors += 1
            logger.error(f"[PRODUCER] Screenshot error: {e}")
            self.supervisor.request_recovery(f"capture failed: {e}")
            return

        await self._handoff(session, frame)

    async def _capture(self) -> Frame:
        data = await self.renderer.capture_frame()
        self._sequence += 1
        self.stats.frames_captured += 1
        frame = Frame(data=data, sequence=self._sequence)
        self.stats.last_frame_at = frame.captured_at
        return frame

    async def _handoff(self, session: "StreamSession", frame: Frame) -> None:
        if not session.active:
            return
        try:
            await session.encoder.write_frame(frame.data)
            self.stats.frames_sent += 1
        except EncoderFault as e:
            self.stats.frames_dropped += 1
            if self.stats.frames_dropped == 1 or self.stats.frames_dropped % 100 == 0:
                logger.warning(
                    f"[PRODUCER] Dropped frame {frame.sequence} "
                    f"({self.stats.frames_dropped} total): {e}"
                )
