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
Demand-driven stream lifecycle.

The StreamController owns the single stream session (encoder subprocess,
capture task, running flag) and the inactivity timer:

    IDLE --ensure_running()--> STARTING --> RUNNING
    RUNNING --inactivity timeout--> IDLE
    RUNNING --encoder failure--> IDLE

Every client request calls ``touch()`` to push the inactivity deadline to a
fresh ``inactivity_timeout`` from now. The first manifest request also calls
``ensure_running()``, which starts a session if none exists.
"""

from __future__ import annotations

import asyncio
import contextlib
import shutil
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union

from pagecast.core.encoder import EncoderConfig, EncoderProcess
from pagecast.core.producer import FrameProducer
from pagecast.core.supervisor import RendererSupervisor
from pagecast.exceptions import EncoderFault
from pagecast.utils.logger import logger


EncoderFactory = Callable[..., EncoderProcess]


class SessionState(str, Enum):
    """State of the stream lifecycle."""

    IDLE = "idle"
    STARTING = "starting"
    RUNNING = "running"


@dataclass
class StreamSession:
    """The live encoder and capture task of one stream session."""

    encoder: EncoderProcess
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    started_at: float = field(default_factory=time.time)
    active: bool = True
    producer_task: Optional[asyncio.Task] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "session_id": self.session_id,
            "started_at": self.started_at,
            "uptime_seconds": time.time() - self.started_at,
            "active": self.active,
            "encoder": self.encoder.to_dict(),
        }


class StreamController:
    """Starts the stream on demand and tears it down when clients go away.

    At most one session, and therefore at most one encoder subprocess and
    one capture task, exists at any instant. Start and teardown run under
    one lock, so a new session cannot begin while the previous encoder is
    still shutting down.

    Example:
        >>> controller = StreamController(supervisor, producer, "hls-stream", EncoderConfig())
        >>> controller.touch()
        >>> await controller.ensure_running()
        >>> controller.state
        <SessionState.RUNNING: 'running'>
    """

    def __init__(
        self,
        supervisor: RendererSupervisor,
        producer: FrameProducer,
        stream_dir: Union[str, Path],
        encoder_config: EncoderConfig,
        inactivity_timeout: float = 10.0,
        encoder_factory: EncoderFactory = EncoderProcess,
    ) -> None:
        self.supervisor = supervisor
        self.producer = producer
        self.stream_dir = Path(stream_dir)
        self.encoder_config = encoder_config
        self.inactivity_timeout = inactivity_timeout
        self.encoder_factory = encoder_factory

        self._state = SessionState.IDLE
        self._session: Optional[StreamSession] = None
        self._lock = asyncio.Lock()
        self._timer: Optional[asyncio.TimerHandle] = None
        self._deadline: Optional[float] = None
        self._stop_task: Optional[asyncio.Task] = None

        self.sessions_started = 0
        self.sessions_stopped = 0
        self.last_stop_reason: Optional[str] = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def session(self) -> Optional[StreamSession]:
        return self._session

    @property
    def seconds_until_idle(self) -> Optional[float]:
        """Seconds left before the inactivity timeout fires, if armed."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - asyncio.get_running_loop().time())

    async def ensure_running(self) -> None:
        """Start a stream session unless one is running or starting.

        Raises:
            RenderLoadError: If the target page cannot be loaded
            EncoderFault: If the encoder fails to start
        """
        if self._state != SessionState.IDLE:
            return

        async with self._lock:
            # Another request may have started the session while we waited
            if self._state != SessionState.IDLE:
                return
            self._state = SessionState.STARTING
            logger.info("[STREAM] Starting stream session")

            encoder: Optional[EncoderProcess] = None
            try:
                await self.supervisor.ensure_loaded()
                self._wipe_stream_dir()
                session_id = uuid.uuid4().hex[:8]
                encoder = self.encoder_factory(
                    self.encoder_config,
                    on_exit=lambda fault: self._on_encoder_exit(session_id, fault),
                )
                await encoder.start(self.stream_dir)
                if not encoder.is_running:
                    raise EncoderFault(
                        "FFmpeg exited during startup",
                        returncode=encoder.returncode,
                        stderr_tail=encoder.stderr_tail,
                    )
            except Exception as e:
                logger.error(f"[STREAM] Failed to start stream session: {e}")
                if encoder is not None:
                    await encoder.stop()
                self._state = SessionState.IDLE
                raise

            session = StreamSession(encoder=encoder, session_id=session_id)
            session.producer_task = asyncio.create_task(
                self.producer.run(session),
                name=f"frame-producer-{session_id}",
            )
            self._session = session
            self._state = SessionState.RUNNING
            self.sessions_started += 1
            logger.info(f"[STREAM] Stream session {session_id} running")
            # Rearm a deadline that lapsed during startup
            if self._timer is None:
                self.touch()

    def touch(self) -> None:
        """Reset the inactivity deadline to a fresh timeout from now."""
        loop = asyncio.get_running_loop()
        if self._timer is not None:
            self._timer.cancel()
        self._deadline = loop.time() + self.inactivity_timeout
        self._timer = loop.call_later(self.inactivity_timeout, self._on_inactivity)

    async def stop_session(self, reason: str) -> bool:
        """Tear down the current session. Idempotent and safe from any path.

        Args:
            reason: Why the session is stopping (logged)

        Returns:
            True if a session was stopped by this call
        """
        session = self._session
        if session is None or not session.active:
            return False

        logger.info(f"[STREAM] Stopping stream session {session.session_id} ({reason})")
        session.active = False
        self._session = None
        self._state = SessionState.IDLE
        self._cancel_timer()
        self.last_stop_reason = reason

        # A concurrent ensure_running() waits on the lock until teardown is done
        async with self._lock:
            task = session.producer_task
            if task is not None and not task.done() and task is not asyncio.current_task():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
            try:
                await session.encoder.stop()
            except Exception as e:
                logger.error(f"[STREAM] Error stopping encoder: {e}")
            self.sessions_stopped += 1

        logger.info(f"[STREAM] Stream session {session.session_id} stopped")
        return True

    async def shutdown(self) -> None:
        """Stop any running session and disarm the timer."""
        self._cancel_timer()
        if self._stop_task is not None and not self._stop_task.done():
            with contextlib.suppress(asyncio.CancelledError):
                await self._stop_task
        await self.stop_session("shutdown")

    def _on_inactivity(self) -> None:
        self._timer = None
        self._deadline = None
        if self._session is None:
            if self._state == SessionState.STARTING:
                logger.debug("[STREAM] Inactivity deadline passed while starting")
            return
        logger.info(
            f"[STREAM] No client requests for {self.inactivity_timeout:g}s, stopping stream"
        )
        self._stop_task = asyncio.create_task(
            self.stop_session("inactivity"), name="stream-inactivity-stop"
        )

    async def _on_encoder_exit(self, session_id: str, fault: EncoderFault) -> None:
        session = self._session
        if session is None or session.session_id != session_id:
            logger.debug(f"[STREAM] Ignoring encoder exit for stale session {session_id}")
            return
        await self.stop_session(f"encoder failure: {fault.message}")

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
        self._timer = None
        self._deadline = None

    def _wipe_stream_dir(self) -> None:
        """Remove every file from the stream directory, creating it if needed."""
        self.stream_dir.mkdir(parents=True, exist_ok=True)
        removed = 0
        for entry in self.stream_dir.iterdir():
            if entry.is_dir() and not entry.is_symlink():
                shutil.rmtree(entry)
            else:
                entry.unlink()
            removed += 1
        logger.debug(f"[STREAM] Cleared {removed} entries from {self.stream_dir}")

    def status(self) -> Dict[str, Any]:
        """Snapshot of the lifecycle for health reporting."""
        return {
            "state": self._state.value,
            "session": self._session.to_dict() if self._session else None,
            "sessions_started": self.sessions_started,
            "sessions_stopped": self.sessions_stopped,
            "last_stop_reason": self.last_stop_reason,
            "inactivity_timeout": self.inactivity_timeout,
            "producer": self.producer.stats.to_dict(),
            "renderer": self.supervisor.to_dict(),
        }
