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
PageCast - Stream a region of a live web page as HLS video.

A headless browser renders the target page, frames of one element's region
are piped into an ffmpeg HLS encoder, and a small HTTP service starts the
stream on demand and stops it when clients go away.
"""

__version__ = "0.1.0"
__author__ = "Firefly Software Solutions Inc"
__license__ = "Apache-2.0"

from pagecast.config import PageCastConfig, load_config
from pagecast.core.encoder import EncoderConfig, EncoderProcess
from pagecast.core.lifecycle import SessionState, StreamController
from pagecast.core.producer import FrameProducer
from pagecast.core.renderer import RendererHandle
from pagecast.core.supervisor import RendererSupervisor
from pagecast.exceptions import (
    ConfigurationError,
    DeliveryTimeout,
    EncoderFault,
    PageCastError,
    RenderCaptureError,
    RendererError,
    RendererLifecycleFault,
    RenderLoadError,
)

__all__ = [
    # Configuration
    "ConfigurationError",
    "PageCastConfig",
    "load_config",
    # Core
    "EncoderConfig",
    "EncoderProcess",
    "FrameProducer",
    "RendererHandle",
    "RendererSupervisor",
    "SessionState",
    "StreamController",
    # Errors
    "DeliveryTimeout",
    "EncoderFault",
    "PageCastError",
    "RenderCaptureError",
    "RendererError",
    "RendererLifecycleFault",
    "RenderLoadError",
]
