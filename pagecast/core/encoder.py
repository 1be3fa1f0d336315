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

"""FFmpeg-based HLS encoder process for PageCast.

This module owns exactly one ffmpeg subprocess at a time:
- Push-based JPEG image input on stdin, timestamped by wall clock
- A continuously looping audio track (or generated silence)
- Segmented HLS output with a bounded rolling window
- Graceful stop (SIGINT) with a kill fallback
- Exit monitoring that reports unexpected termination as an EncoderFault

The encoder paces its own output frame rate, so frames may arrive as fast
or as slow as the renderer produces them.
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import os
import shutil
import signal
from collections import deque
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Deque, List, Optional, Union

from pagecast.exceptions import EncoderFault
from pagecast.utils.logger import logger


ExitCallback = Callable[[EncoderFault], Union[None, Awaitable[None]]]


@dataclass
class EncoderConfig:
    """Configuration for the HLS encoder.

    Attributes:
        ffmpeg_path: Path to ffmpeg binary (auto-detected on start if None)
        input_frame_rate: Nominal rate declared for the image pipe
        output_frame_rate: Fixed output frame rate, independent of input arrival
        gop_size: Keyframe interval in frames
        segment_duration: HLS segment length in seconds (sub-second for latency)
        playlist_size: Number of segments kept in the rolling window
        preset: x264 preset (latency over compression efficiency)
        tune: x264 tune
        pixel_format: Output pixel format
        audio_path: Audio file looped under the video (silence if None)
        manifest_name: Manifest file name inside the stream directory
        segment_pattern: Segment file name pattern inside the stream directory
        stop_timeout: Seconds to wait for a graceful exit before killing
        stderr_tail_lines: Number of stderr lines kept for diagnostics
    """

    ffmpeg_path: Optional[str] = None
    input_frame_rate: int = 30
    output_frame_rate: int = 10
    gop_size: int = 11
    segment_duration: float = 0.5
    playlist_size: int = 20
    preset: str = "ultrafast"
    tune: Optional[str] = "zerolatency"
    pixel_format: str = "yuv420p"
    audio_path: Optional[str] = None
    manifest_name: str = "stream.m3u8"
    segment_pattern: str = "stream%d.ts"
    stop_timeout: float = 5.0
    stderr_tail_lines: int = 50

    def resolve_ffmpeg(self) -> str:
        """Return the ffmpeg binary path, searching PATH when not configured."""
        if self.ffmpeg_path:
            return self.ffmpeg_path
        ffmpeg_path = shutil.which("ffmpeg")
        if not ffmpeg_path:
            raise EncoderFault(
                "ffmpeg not found in PATH. Please install ffmpeg or set ffmpeg_path."
            )
        return ffmpeg_path

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "input_frame_rate": self.input_frame_rate,
            "output_frame_rate": self.output_frame_rate,
            "gop_size": self.gop_size,
            "segment_duration": self.segment_duration,
            "playlist_size": self.playlist_size,
            "preset": self.preset,
            "tune": self.tune,
            "audio_path": self.audio_path,
        }


def build_command(config: EncoderConfig, output_dir: Union[str, Path]) -> List[str]:
    """Build the ffmpeg argv for a live HLS session.

    Args:
        config: Encoder configuration
        output_dir: Directory receiving the manifest and segments

    Returns:
        Argument list suitable for ``asyncio.create_subprocess_exec``
    """
    output_dir = str(output_dir)
    cmd = [config.resolve_ffmpeg(), "-y", "-hide_banner"]

    # Input 0: JPEG frames pushed on stdin, timestamped on arrival
    cmd.extend([
        "-f", "image2pipe",
        "-framerate", str(config.input_frame_rate),
        "-use_wallclock_as_timestamps", "1",
        "-i", "pipe:0",
    ])

    # Input 1: looping audio track
    if config.audio_path:
        cmd.extend(["-stream_loop", "-1", "-i", config.audio_path])
    else:
        cmd.extend(["-f", "lavfi", "-i", "anullsrc=channel_layout=stereo:sample_rate=44100"])

    cmd.extend(["-map", "0:v", "-map", "1:a"])

    cmd.extend([
        "-vf", f"fps={config.output_frame_rate}",
        "-c:v", "libx264",
        "-preset", config.preset,
    ])
    if config.tune:
        cmd.extend(["-tune", config.tune])
    cmd.extend([
        "-pix_fmt", config.pixel_format,
        "-r", str(config.output_frame_rate),
        "-g", str(config.gop_size),
        "-c:a", "aac",
    ])

    cmd.extend([
        "-f", "hls",
        "-hls_time", f"{config.segment_duration:g}",
        "-hls_list_size", str(config.playlist_size),
        "-hls_flags", "delete_segments+append_list+program_date_time",
        "-hls_allow_cache", "0",
        "-hls_segment_filename", os.path.join(output_dir, config.segment_pattern),
        os.path.join(output_dir, config.manifest_name),
    ])
    return cmd


class EncoderProcess:
    """A single ffmpeg HLS encoder subprocess.

    Lifecycle is start → write_frame* → stop. An instance is single-use;
    the stream controller creates a fresh one for every session.

    Any exit that ``stop()`` did not initiate is reported through the
    ``on_exit`` callback as an EncoderFault, which the controller treats as
    fatal to the current session.

    Example:
        >>> encoder = EncoderProcess(EncoderConfig(), on_exit=handle_fault)
        >>> await encoder.start("hls-stream")
        >>> await encoder.write_frame(jpeg_bytes)
        >>> await encoder.stop()
    """

    def __init__(self, config: EncoderConfig, on_exit: Optional[ExitCallback] = None) -> None:
        self.config = config
        self.on_exit = on_exit
        self._process: Optional[asyncio.subprocess.Process] = None
        self._monitor_task: Optional[asyncio.Task] = None
        self._stderr_task: Optional[asyncio.Task] = None
        self._stderr_lines: Deque[str] = deque(maxlen=config.stderr_tail_lines)
        self._started = False
        self._stopping = False
        self.returncode: Optional[int] = None

    @property
    def is_running(self) -> bool:
        """Whether the subprocess is alive and accepting frames."""
        return (
            self._process is not None
            and self._process.returncode is None
            and not self._stopping
        )

    @property
    def pid(self) -> Optional[int]:
        return self._process.pid if self._process else None

    @property
    def stderr_tail(self) -> str:
        """Last lines ffmpeg wrote to stderr."""
        return "\n".join(self._stderr_lines)

    async def start(self, output_dir: Union[str, Path]) -> None:
        """Spawn ffmpeg writing HLS output into ``output_dir``.

        Raises:
            EncoderFault: If ffmpeg is missing or fails to spawn
        """
        if self._started:
            raise EncoderFault("Encoder process already started")
        self._started = True

        cmd = build_command(self.config, output_dir)
        logger.info(f"[ENCODER] FFmpeg command: {' '.join(cmd)}")

        try:
            self._process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise EncoderFault(f"FFmpeg not found: {e}") from e
        except OSError as e:
            raise EncoderFault(f"Failed to start FFmpeg: {e}") from e

        self._stderr_task = asyncio.create_task(self._drain_stderr(), name="encoder-stderr")
        self._monitor_task = asyncio.create_task(self._monitor_exit(), name="encoder-monitor")
        logger.info(f"[ENCODER] FFmpeg started (pid={self._process.pid})")

    async def write_frame(self, data: bytes) -> None:
        """Push one encoded image into the encoder input.

        Raises:
            EncoderFault: If the input is closed or the pipe is broken
        """
        process = self._process
        if process is None or self._stopping or process.stdin is None:
            raise EncoderFault("Encoder input is closed")
        if process.stdin.is_closing():
            raise EncoderFault("Encoder input is closed", returncode=process.returncode)

        try:
            process.stdin.write(data)
            await process.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as e:
            raise EncoderFault(
                f"Encoder input pipe broken: {e}",
                returncode=process.returncode,
                stderr_tail=self.stderr_tail,
            ) from e

    async def stop(self) -> None:
        """Stop the encoder gracefully. Safe to call repeatedly and from any path."""
        process = self._process
        if process is None or self._stopping:
            return
        self._stopping = True

        logger.info(f"[ENCODER] Stopping FFmpeg (pid={process.pid})")

        # Graceful stop lets ffmpeg finalize the current segment
        if process.returncode is None:
            with contextlib.suppress(ProcessLookupError):
                process.send_signal(signal.SIGINT)

        if process.stdin is not None:
            process.stdin.close()
            with contextlib.suppress(BrokenPipeError, ConnectionResetError):
                await process.stdin.wait_closed()

        try:
            await asyncio.wait_for(process.wait(), timeout=self.config.stop_timeout)
        except asyncio.TimeoutError:
            logger.warning("[ENCODER] FFmpeg did not exit gracefully, killing...")
            with contextlib.suppress(ProcessLookupError):
                process.kill()
            await process.wait()

        self.returncode = process.returncode
        await self._cancel_helper(self._monitor_task)
        await self._cancel_helper(self._stderr_task)
        self._monitor_task = None
        self._stderr_task = None
        self._process = None
        logger.info(f"[ENCODER] FFmpeg stopped (exit code: {self.returncode})")

    async def _monitor_exit(self) -> None:
        """Wait for the process to exit and report unexpected exits."""
        process = self._process
        if process is None:
            return
        returncode = await process.wait()
        if self._stopping:
            return

        # Let the stderr reader reach EOF so the tail is complete
        if self._stderr_task is not None:
            with contextlib.suppress(asyncio.TimeoutError, asyncio.CancelledError):
                await asyncio.wait_for(asyncio.shield(self._stderr_task), timeout=1.0)
        if self._stopping:
            return

        self.returncode = returncode
        fault = EncoderFault(
            f"FFmpeg exited unexpectedly (exit code: {returncode})",
            returncode=returncode,
            stderr_tail=self.stderr_tail,
        )
        logger.error(f"[ENCODER] {fault.message}")
        if fault.stderr_tail:
            logger.error(f"[ENCODER] FFmpeg stderr: {fault.stderr_tail[-500:]}")

        if self.on_exit is not None:
            result = self.on_exit(fault)
            if inspect.isawaitable(result):
                await result

    async def _drain_stderr(self) -> None:
        process = self._process
        if process is None or process.stderr is None:
            return
        while True:
            line = await process.stderr.readline()
            if not line:
                break
            text = line.decode("utf-8", errors="ignore").rstrip()
            if text:
                self._stderr_lines.append(text)
                logger.debug(f"[ENCODER] ffmpeg: {text}")

    @staticmethod
    async def _cancel_helper(task: Optional[asyncio.Task]) -> None:
        # The exit monitor may be the caller (stop via on_exit); never cancel ourselves
        if task is None or task.done() or task is asyncio.current_task():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "pid": self.pid,
            "running": self.is_running,
            "returncode": self.returncode,
            "config": self.config.to_dict(),
        }
