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

"""Custom exceptions for PageCast.

This module defines the exception hierarchy used throughout PageCast.
All exceptions inherit from PageCastError for easy catching and handling.

Exception Hierarchy:
    PageCastError (base)
    ├── RendererError - Browser renderer errors
    │   ├── RenderLoadError - Target page/region could not be resolved
    │   ├── RenderCaptureError - A single frame capture failed
    │   └── RendererLifecycleFault - Page closed, crashed or disconnected
    ├── EncoderFault - Encoder subprocess failed or exited
    ├── DeliveryTimeout - Segments not ready within the maximum wait
    └── ConfigurationError - Configuration errors

Only RendererLifecycleFault raised during startup and ConfigurationError are
fatal to the process. Everything else is contained to a frame, a recovery
attempt or a single stream session.

Example:
    try:
        await controller.ensure_running()
    except RenderLoadError:
        # Target element missing, retried on next demand
        pass
    except EncoderFault:
        # ffmpeg failed to start
        pass
"""

from typing import Optional


class PageCastError(Exception):
    """Base exception for all PageCast errors.

    Attributes:
        message: Error message describing what went wrong
    """

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message


class RendererError(PageCastError):
    """Base exception for browser renderer errors."""
    pass


class RenderLoadError(RendererError):
    """Exception raised when the target page or capture region cannot be resolved.

    Examples:
        - Navigation failed or timed out
        - Target element not present in the DOM
        - Element has no bounding box (hidden or zero-size)
    """
    pass


class RenderCaptureError(RendererError):
    """Exception raised when a single frame capture fails.

    Transient: triggers supervised renderer recovery while the stream
    session keeps running.
    """
    pass


class RendererLifecycleFault(RendererError):
    """Exception raised for page or browser lifecycle faults.

    Attributes:
        event: Name of the lifecycle event that caused the fault, if any
    """

    def __init__(self, message: str = "", event: Optional[str] = None) -> None:
        super().__init__(message)
        self.event = event


class EncoderFault(PageCastError):
    """Exception raised when the encoder subprocess fails.

    Fatal to the current stream session, never to the process.

    Attributes:
        returncode: Process exit code, if the process exited
        stderr_tail: Last lines of encoder stderr for diagnostics
    """

    def __init__(
        self,
        message: str = "",
        returncode: Optional[int] = None,
        stderr_tail: str = "",
    ) -> None:
        super().__init__(message)
        self.returncode = returncode
        self.stderr_tail = stderr_tail


class DeliveryTimeout(PageCastError):
    """Exception raised when segments are not ready in time.

    Attributes:
        waited: Seconds spent waiting
        ready: Number of ready segments found
    """

    def __init__(self, message: str = "", waited: float = 0.0, ready: int = 0) -> None:
        super().__init__(message)
        self.waited = waited
        self.ready = ready


class ConfigurationError(PageCastError):
    """Exception raised for invalid or missing configuration."""
    pass
