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
Capture-to-stream core: renderer, supervision, frame production, encoding
and the demand-driven session lifecycle.
"""

from pagecast.core.encoder import EncoderConfig, EncoderProcess
from pagecast.core.lifecycle import SessionState, StreamController, StreamSession
from pagecast.core.producer import Frame, FrameProducer, ProducerStats
from pagecast.core.renderer import CaptureRegion, RendererEvent, RendererHandle
from pagecast.core.supervisor import RendererHealth, RendererSupervisor

__all__ = [
    "CaptureRegion",
    "EncoderConfig",
    "EncoderProcess",
    "Frame",
    "FrameProducer",
    "ProducerStats",
    "RendererEvent",
    "RendererHandle",
    "RendererHealth",
    "RendererSupervisor",
    "SessionState",
    "StreamController",
    "StreamSession",
]
