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
Configuration for the PageCast streaming service.

Defaults are the fixed constants of a single-page deployment: capture the
``#container`` element, serve on port 3000, stop the stream after 10 seconds
without client requests. Every value can be overridden from ``PAGECAST_*``
environment variables (see ``PageCastConfig.from_env``) or from the
``pagecast-serve`` command line.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import List, Optional

from pagecast.core.encoder import EncoderConfig
from pagecast.exceptions import ConfigurationError


DEFAULT_TARGET_URL = (
    "https://mwood77.github.io/ws4kp-international/"
    "?current-weather-checkbox=true&hourly-checkbox=true&hourly-graph-checkbox=true"
    "&local-forecast-checkbox=true&extended-forecast-checkbox=true&almanac-checkbox=true"
    "&marine-forecast-checkbox=true&aqi-forecast-checkbox=true&chkAutoRefresh=true"
    "&latLonQuery=Paris%2C+%C3%8Ele-de-France%2C+FRA"
    "&latLon=%7B%22lat%22%3A48.8563%2C%22lon%22%3A2.3525%7D"
)

_WAIT_UNTIL_VALUES = ("commit", "domcontentloaded", "load", "networkidle")
_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _env_number(name: str, default, cast):
    """Read a numeric environment variable, falling back to ``default``."""
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return cast(raw)
    except ValueError as e:
        raise ConfigurationError(f"Invalid {name} '{raw}': {e}") from e


@dataclass
class PageCastConfig:
    """Configuration for the PageCast service.

    Attributes:
        target_url: Page rendered by the browser
        target_selector: CSS selector of the element whose region is streamed
        viewport_width: Browser viewport width in pixels
        viewport_height: Browser viewport height in pixels
        headless: Run the browser without a visible window
        navigation_timeout_ms: Explicit navigation timeout for page loads
        wait_until: Navigation wait policy passed to ``page.goto``
        jpeg_quality: JPEG quality of captured frames
        host: HTTP bind host
        port: HTTP bind port
        stream_dir: Directory holding the manifest and segments
        inactivity_timeout: Seconds without client requests before teardown
        priming_frames: Back-to-back captures sent when a session starts
        recovery_settle_delay: Seconds to wait before a renderer recovery
        manifest_max_wait: Maximum seconds a manifest request waits for segments
        manifest_poll_interval: Seconds between segment directory polls
        min_ready_segments: Real segments required before serving the manifest
        placeholder_segment: First segment name excluded from readiness counts
        log_level: Logging level name
        encoder: Encoder configuration
    """

    target_url: str = DEFAULT_TARGET_URL
    target_selector: str = "#container"
    viewport_width: int = 1280
    viewport_height: int = 720
    headless: bool = True
    navigation_timeout_ms: int = 30000
    wait_until: str = "domcontentloaded"
    jpeg_quality: int = 80

    host: str = "0.0.0.0"
    port: int = 3000
    stream_dir: str = "./hls-stream"

    inactivity_timeout: float = 10.0
    priming_frames: int = 100
    recovery_settle_delay: float = 1.0

    manifest_max_wait: float = 1.0
    manifest_poll_interval: float = 0.1
    min_ready_segments: int = 3
    placeholder_segment: str = "stream0.ts"

    log_level: str = "INFO"

    encoder: EncoderConfig = field(default_factory=EncoderConfig)

    @property
    def logging_level(self) -> int:
        """Numeric logging level for ``log_level``."""
        return getattr(logging, self.log_level.upper(), logging.INFO)

    @property
    def manifest_path(self) -> str:
        """Full path of the HLS manifest."""
        return os.path.join(self.stream_dir, self.encoder.manifest_name)

    @classmethod
    def from_env(cls) -> "PageCastConfig":
        """Create PageCastConfig from environment variables.

        Environment variables:
            PAGECAST_URL: Page to render
            PAGECAST_SELECTOR: CSS selector of the streamed element
            PAGECAST_VIEWPORT: Viewport as WIDTHxHEIGHT (e.g. 1280x720)
            PAGECAST_HEADLESS: "false" to show the browser window
            PAGECAST_NAVIGATION_TIMEOUT_MS: Page load timeout (ms)
            PAGECAST_HOST: HTTP bind host
            PAGECAST_PORT: HTTP bind port
            PAGECAST_STREAM_DIR: Stream output directory
            PAGECAST_INACTIVITY_TIMEOUT: Seconds before an idle stream stops
            PAGECAST_AUDIO: Audio file looped under the video
            PAGECAST_FFMPEG: Path to the ffmpeg binary
            PAGECAST_SEGMENT_DURATION: HLS segment length (seconds)
            PAGECAST_PLAYLIST_SIZE: Rolling window size (segments)
            PAGECAST_LOG_LEVEL: Logging level

        Returns:
            PageCastConfig with values from environment
        """
        defaults = cls()
        width, height = defaults.viewport_width, defaults.viewport_height
        viewport = os.environ.get("PAGECAST_VIEWPORT", "")
        if viewport:
            try:
                width_str, height_str = viewport.lower().split("x", 1)
                width, height = int(width_str), int(height_str)
            except ValueError as e:
                raise ConfigurationError(f"Invalid PAGECAST_VIEWPORT '{viewport}': {e}") from e

        encoder = EncoderConfig(
            ffmpeg_path=os.environ.get("PAGECAST_FFMPEG") or None,
            audio_path=os.environ.get("PAGECAST_AUDIO") or None,
            segment_duration=_env_number(
                "PAGECAST_SEGMENT_DURATION", defaults.encoder.segment_duration, float
            ),
            playlist_size=_env_number(
                "PAGECAST_PLAYLIST_SIZE", defaults.encoder.playlist_size, int
            ),
        )

        return cls(
            target_url=os.environ.get("PAGECAST_URL", defaults.target_url),
            target_selector=os.environ.get("PAGECAST_SELECTOR", defaults.target_selector),
            viewport_width=width,
            viewport_height=height,
            headless=os.environ.get("PAGECAST_HEADLESS", "true").lower() != "false",
            navigation_timeout_ms=_env_number(
                "PAGECAST_NAVIGATION_TIMEOUT_MS", defaults.navigation_timeout_ms, int
            ),
            host=os.environ.get("PAGECAST_HOST", defaults.host),
            port=_env_number("PAGECAST_PORT", defaults.port, int),
            stream_dir=os.environ.get("PAGECAST_STREAM_DIR", defaults.stream_dir),
            inactivity_timeout=_env_number(
                "PAGECAST_INACTIVITY_TIMEOUT", defaults.inactivity_timeout, float
            ),
            log_level=os.environ.get("PAGECAST_LOG_LEVEL", defaults.log_level),
            encoder=encoder,
        )

    def validate(self) -> List[str]:
        """Validate configuration and return list of errors."""
        errors = []

        if not self.target_url:
            errors.append("target_url is required")

        if not self.target_selector:
            errors.append("target_selector is required")

        if self.viewport_width <= 0 or self.viewport_height <= 0:
            errors.append("viewport dimensions must be positive")

        if self.port < 1 or self.port > 65535:
            errors.append("port must be between 1 and 65535")

        if not 1 <= self.jpeg_quality <= 100:
            errors.append("jpeg_quality must be between 1 and 100")

        if self.wait_until not in _WAIT_UNTIL_VALUES:
            errors.append(f"wait_until must be one of {', '.join(_WAIT_UNTIL_VALUES)}")

        if self.navigation_timeout_ms <= 0:
            errors.append("navigation_timeout_ms must be positive")

        if self.inactivity_timeout <= 0:
            errors.append("inactivity_timeout must be positive")

        if self.priming_frames < 0:
            errors.append("priming_frames must not be negative")

        if self.manifest_poll_interval <= 0:
            errors.append("manifest_poll_interval must be positive")

        if self.manifest_max_wait < 0:
            errors.append("manifest_max_wait must not be negative")

        if self.log_level.upper() not in _LOG_LEVELS:
            errors.append(f"log_level must be one of {', '.join(_LOG_LEVELS)}")

        if self.encoder.segment_duration <= 0:
            errors.append("encoder.segment_duration must be positive")

        if self.encoder.playlist_size < 1:
            errors.append("encoder.playlist_size must be at least 1")

        if self.encoder.audio_path and not os.path.isfile(self.encoder.audio_path):
            errors.append(f"audio file not found: {self.encoder.audio_path}")

        return errors

    def check(self) -> "PageCastConfig":
        """Raise ConfigurationError if the configuration is invalid."""
        errors = self.validate()
        if errors:
            raise ConfigurationError("Invalid configuration: " + "; ".join(errors))
        return self


def load_config(overrides: Optional[dict] = None) -> PageCastConfig:
    """Load configuration from the environment and apply keyword overrides.

    Args:
        overrides: Attribute values replacing those read from the environment

    Returns:
        Validated PageCastConfig
    """
    config = PageCastConfig.from_env()
    for key, value in (overrides or {}).items():
        if not hasattr(config, key):
            raise ConfigurationError(f"Unknown configuration key: {key}")
        setattr(config, key, value)
    return config.check()
