# Copyright 2026 Firefly Software Solutions Inc
# SPDX-License-Identifier: Apache-2.0

"""Unit tests for FrameProducer."""

import asyncio

import pytest
import pytest_asyncio

from pagecast.core.encoder import EncoderConfig
from pagecast.core.lifecycle import StreamSession
from pagecast.core.producer import FrameProducer, ProducerStats
from pagecast.core.supervisor import RendererSupervisor
from pagecast.exceptions import RenderCaptureError

URL = "https://example.com/weather"


@pytest.fixture
def supervisor(fake_renderer):
    """Supervisor with a short settle delay."""
    return RendererSupervisor(fake_renderer, URL, settle_delay=0.05)


@pytest_asyncio.fixture
async def session(fake_encoder_factory):
    """Active session around a started FakeEncoder."""
    encoder = fake_encoder_factory(EncoderConfig())
    await encoder.start("hls-stream")
    return StreamSession(encoder=encoder)


async def _run_for(producer, session, seconds):
    """Run the producer for ``seconds`` then end the session."""
    task = asyncio.create_task(producer.run(session))
    await asyncio.sleep(seconds)
    session.active = False
    await asyncio.wait_for(task, timeout=1.0)


class TestFrameProducerPriming:
    """Tests for the priming burst."""

    @pytest.mark.asyncio
    async def test_priming_burst_before_first_yield(self, fake_renderer, supervisor, session):
        """Test priming frames are sent back-to-back on the first step."""
        await supervisor.initial_load()
        producer = FrameProducer(fake_renderer, supervisor, priming_frames=5)

        task = asyncio.create_task(producer.run(session))
        await asyncio.sleep(0)

        assert len(session.encoder.frames) >= 5
        session.active = False
        await asyncio.wait_for(task, timeout=1.0)

    @pytest.mark.asyncio
    async def test_priming_capture_failure_requests_recovery(self, fake_renderer, supervisor, session):
        """Test a capture failure during priming ends priming and requests recovery."""
        producer = FrameProducer(fake_renderer, supervisor, priming_frames=100)

        task = asyncio.create_task(producer.run(session))
        await asyncio.sleep(0)

        assert fake_renderer.capture_calls == 1
        assert supervisor.is_recovering is True
        assert producer.stats.capture_errors == 1

        session.active = False
        await supervisor.wait_healthy()
        await asyncio.wait_for(task, timeout=1.0)


class TestFrameProducerLoop:
    """Tests for the steady-state capture loop."""

    @pytest.mark.asyncio
    async def test_frames_flow_to_encoder(self, fake_renderer, supervisor, session):
        """Test captured frames are handed to the encoder in order."""
        await supervisor.initial_load()
        producer = FrameProducer(fake_renderer, supervisor, priming_frames=0)

        await _run_for(producer, session, 0.02)

        frames = session.encoder.frames
        assert len(frames) > 0
        assert frames[0] == b"\xff\xd8frame1\xff\xd9"
        assert producer.stats.frames_sent == len(frames)
        assert producer.stats.frames_captured == len(frames)

    @pytest.mark.asyncio
    async def test_capture_failure_keeps_session_running(self, fake_renderer, supervisor, session):
        """Test a capture failure triggers recovery and capture resumes."""
        await supervisor.initial_load()
        fake_renderer.capture_error = RenderCaptureError("Target closed")
        producer = FrameProducer(fake_renderer, supervisor, priming_frames=0)

        task = asyncio.create_task(producer.run(session))
        await asyncio.sleep(0.01)
        assert supervisor.is_recovering is True

        fake_renderer.capture_error = None
        await supervisor.wait_healthy()
        await asyncio.sleep(0.01)

        assert len(session.encoder.frames) > 0
        assert not task.done()
        session.active = False
        await asyncio.wait_for(task, timeout=1.0)

    @pytest.mark.asyncio
    async def test_no_capture_during_recovery(self, fake_renderer, supervisor, session):
        """Test the producer does not touch the page while recovering."""
        await supervisor.initial_load()
        supervisor.request_recovery("renderer closed")
        producer = FrameProducer(fake_renderer, supervisor, priming_frames=0)

        task = asyncio.create_task(producer.run(session))
        await asyncio.sleep(0.02)
        assert fake_renderer.capture_calls == 0

        await supervisor.wait_healthy()
        await asyncio.sleep(0.01)
        assert fake_renderer.capture_calls > 0

        session.active = False
        await asyncio.wait_for(task, timeout=1.0)

    @pytest.mark.asyncio
    async def test_encoder_fault_drops_frame(self, fake_renderer, supervisor, session):
        """Test frames are dropped, not fatal, when the encoder input is closed."""
        await supervisor.initial_load()
        await session.encoder.stop()
        producer = FrameProducer(fake_renderer, supervisor, priming_frames=3)

        await _run_for(producer, session, 0.01)

        assert producer.stats.frames_sent == 0
        assert producer.stats.frames_dropped >= 3

    @pytest.mark.asyncio
    async def test_cancellation(self, fake_renderer, supervisor, session):
        """Test the loop task is cancellable."""
        await supervisor.initial_load()
        producer = FrameProducer(fake_renderer, supervisor, priming_frames=0)

        task = asyncio.create_task(producer.run(session))
        await asyncio.sleep(0.01)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

    @pytest.mark.asyncio
    async def test_inactive_session_sends_nothing(self, fake_renderer, supervisor, session):
        """Test an already stopped session produces no frames."""
        await supervisor.initial_load()
        session.active = False
        producer = FrameProducer(fake_renderer, supervisor, priming_frames=5)

        await producer.run(session)

        assert session.encoder.frames == []


class TestProducerStats:
    """Tests for ProducerStats."""

    def test_to_dict(self):
        """Test conversion to dictionary."""
        stats = ProducerStats(frames_captured=3, frames_sent=2, frames_dropped=1)
        data = stats.to_dict()

        assert data["frames_captured"] == 3
        assert data["frames_sent"] == 2
        assert data["frames_dropped"] == 1
        assert data["capture_errors"] == 0
