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
Pydantic models for PageCast HTTP responses.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """
    Response model for the health check endpoint.

    Attributes:
        status: Overall service status ("healthy" or "degraded")
        version: PageCast version
        stream_state: Stream lifecycle state (idle, starting, running)
        renderer_state: Renderer health (healthy, recovering)
        stream: Detailed stream, producer and renderer statistics
    """

    status: str = Field(..., description="Service status")
    version: str = Field(..., description="PageCast version")
    stream_state: str = Field(..., description="Stream lifecycle state")
    renderer_state: str = Field(..., description="Renderer health state")
    stream: Dict[str, Any] = Field(default_factory=dict, description="Stream statistics")


class ErrorResponse(BaseModel):
    """
    Standard error response model.

    Attributes:
        error: Error type/code
        message: Human-readable error message
        details: Additional error details
    """

    error: str = Field(..., description="Error type")
    message: str = Field(..., description="Error message")
    details: Optional[Dict[str, Any]] = Field(None, description="Additional details")
