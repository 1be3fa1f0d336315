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

"""Segment readiness gating and safe segment lookup.

An encoder that has just started has not produced playable media yet.
Manifest requests wait (briefly, bounded) until a few real segments exist so
players do not stall on an empty playlist.
"""

from __future__ import annotations

import asyncio
import re
import time
from pathlib import Path
from typing import Optional, Union

from pagecast.exceptions import DeliveryTimeout
from pagecast.utils.logger import logger

_SEGMENT_NAME = re.compile(r"^[A-Za-z0-9_\-]+\.ts$")


def count_ready_segments(
    stream_dir: Union[str, Path],
    placeholder: Optional[str] = "stream0.ts",
) -> int:
    """Count media segments on disk, excluding the placeholder first segment."""
    stream_dir = Path(stream_dir)
    if not stream_dir.is_dir():
        return 0
    return sum(
        1
        for entry in stream_dir.iterdir()
        if entry.suffix == ".ts" and entry.name != placeholder
    )


async def wait_for_segments(
    stream_dir: Union[str, Path],
    min_segments: int = 3,
    max_wait: float = 1.0,
    poll_interval: float = 0.1,
    placeholder: Optional[str] = "stream0.ts",
    strict: bool = False,
) -> bool:
    """Poll the stream directory until enough segments exist or time runs out.

    Args:
        stream_dir: Directory written by the encoder
        min_segments: Real segments required
        max_wait: Maximum seconds to wait
        poll_interval: Seconds between polls
        placeholder: Segment name excluded from the count
        strict: Raise DeliveryTimeout instead of returning False

    Returns:
        True if the segments are ready, False on timeout

    Raises:
        DeliveryTimeout: On timeout when ``strict`` is set
    """
    start_time = time.monotonic()
    ready = count_ready_segments(stream_dir, placeholder)
    while ready < min_segments:
        elapsed = time.monotonic() - start_time
        if elapsed >= max_wait:
            message = (
                f"Only {ready}/{min_segments} segments ready after {elapsed:.2f}s, "
                f"serving manifest anyway"
            )
            if strict:
                raise DeliveryTimeout(message, waited=elapsed, ready=ready)
            logger.warning(f"[DELIVERY] {message}")
            return False
        await asyncio.sleep(min(poll_interval, max_wait - elapsed))
        ready = count_ready_segments(stream_dir, placeholder)
    return True


def resolve_segment(stream_dir: Union[str, Path], name: str) -> Optional[Path]:
    """Return the path of segment ``name`` if it is a plain segment file on disk."""
    if not _SEGMENT_NAME.match(name):
        return None
    path = Path(stream_dir) / name
    return path if path.is_file() else None
