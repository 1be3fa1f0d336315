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
FastAPI application serving the PageCast HLS stream.

The stream is demand driven: the first manifest request starts the browser
capture and the encoder, every manifest or segment request keeps it alive,
and it stops on its own once clients go away.

Endpoints:
- ``GET /``: demo page playing the stream with hls.js
- ``GET /health``: service and stream status
- ``GET /stream.m3u8``: HLS manifest (starts the stream if idle)
- ``GET /{segment}.ts``: media segments
- anything else: static files from the stream directory

Example Usage:
    Start the service:
    ```bash
    uvicorn pagecast.service.app:app --host 0.0.0.0 --port 3000
    ```

    Play the stream:
    ```bash
    ffplay http://localhost:3000/stream.m3u8
    ```
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, HTMLResponse, JSONResponse
from fastapi.staticfiles import StaticFiles

from pagecast import __version__
from pagecast.config import PageCastConfig, load_config
from pagecast.core.supervisor import RendererHealth
from pagecast.exceptions import (
    EncoderFault,
    PageCastError,
    RendererError,
)
from pagecast.service.models import ErrorResponse, HealthResponse
from pagecast.service.streamer import StreamerService
from pagecast.utils.logger import logger, setup_logger

MANIFEST_MEDIA_TYPE = "application/vnd.apple.mpegurl"
SEGMENT_MEDIA_TYPE = "video/mp2t"
NO_CACHE_HEADERS = {"Cache-Control": "no-cache, no-store, must-revalidate"}

DEMO_PAGE = """<!DOCTYPE html>
<html>
<head>
  <title>PageCast</title>
</head>
<body>
  <h1>HLS Test Stream</h1>
  <video id="video" controls autoplay muted width="600"></video>
  <script src="https://cdn.jsdelivr.net/npm/hls.js@latest"></script>
  <script>
    const video = document.getElementById('video');
    if (Hls.isSupported()) {
      const hls = new Hls();
      hls.loadSource('/stream.m3u8');
      hls.attachMedia(video);
      hls.on(Hls.Events.MANIFEST_PARSED, () => video.play());
    } else {
      video.src = '/stream.m3u8';
    }
  </script>
</body>
</html>
"""

API_DESCRIPTION = """
# PageCast API

Streams a region of a live web page as HLS video.

## Quick Start

1. Open `/` in a browser, or point any HLS player at `/stream.m3u8`
2. The first manifest request starts capture; expect a short warm-up
3. The stream stops by itself a few seconds after the last client leaves
"""


def get_streamer(request: Request) -> StreamerService:
    """Dependency returning the application's StreamerService."""
    return request.app.state.streamer


def create_app(
    config: Optional[PageCastConfig] = None,
    streamer: Optional[StreamerService] = None,
) -> FastAPI:
    """
    Build the PageCast FastAPI application.

    Args:
        config: Service configuration (defaults to ``load_config()``)
        streamer: Prebuilt streamer service, mainly for tests

    Returns:
        Configured FastAPI application
    """
    if config is None:
        config = streamer.config if streamer is not None else load_config()
    setup_logger(level=config.logging_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Start the browser on startup and tear everything down on shutdown."""
        service = streamer or StreamerService(config)
        app.state.streamer = service
        await service.start()
        logger.info(f"Browser ready. HTTP server running on http://{config.host}:{config.port}")

        yield

        await service.stop()

    app = FastAPI(
        title="PageCast API",
        description=API_DESCRIPTION,
        version=__version__,
        lifespan=lifespan,
        license_info={
            "name": "Apache 2.0",
            "url": "https://www.apache.org/licenses/LICENSE-2.0.html",
        },
        openapi_tags=[
            {"name": "Health", "description": "Service and stream status"},
            {"name": "Stream", "description": "HLS manifest and media segments"},
        ],
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["GET", "HEAD", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.exception_handler(PageCastError)
    async def pagecast_exception_handler(request: Request, exc: PageCastError):
        """Map PageCast faults to JSON error responses."""
        if isinstance(exc, (RendererError, EncoderFault)):
            status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        else:
            status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
        details = {"path": request.url.path}
        if isinstance(exc, EncoderFault):
            details["returncode"] = exc.returncode
        logger.error(f"Error serving {request.url.path}: {exc}")
        return JSONResponse(
            status_code=status_code,
            content=ErrorResponse(
                error=type(exc).__name__,
                message=exc.message or "Failed to start stream",
                details=details,
            ).model_dump(),
        )

    @app.get("/", response_class=HTMLResponse, include_in_schema=False)
    async def demo_page():
        """Test page playing the stream with hls.js."""
        return HTMLResponse(DEMO_PAGE)

    @app.get(
        "/health",
        response_model=HealthResponse,
        tags=["Health"],
        summary="Health check",
    )
    async def health_check(service: StreamerService = Depends(get_streamer)):
        """
        Health check endpoint.

        Reports "degraded" while the renderer is recovering. Never starts or
        keeps alive the stream.
        """
        stream = service.status()
        renderer_state = stream["renderer"]["state"]
        return HealthResponse(
            status="healthy" if renderer_state == RendererHealth.HEALTHY.value else "degraded",
            version=__version__,
            stream_state=stream["state"],
            renderer_state=renderer_state,
            stream=stream,
        )

    @app.get(
        "/stream.m3u8",
        tags=["Stream"],
        summary="HLS manifest",
        responses={
            404: {"model": ErrorResponse, "description": "Manifest not written yet"},
            503: {"model": ErrorResponse, "description": "Stream could not be started"},
        },
    )
    async def get_manifest(service: StreamerService = Depends(get_streamer)):
        """
        Serve the HLS manifest, starting the stream if it is idle.

        Waits briefly for the first real segments so players do not stall on
        an empty playlist.
        """
        manifest = await service.prepare_manifest()
        if not manifest.is_file():
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Manifest not available yet",
            )
        return FileResponse(manifest, media_type=MANIFEST_MEDIA_TYPE, headers=NO_CACHE_HEADERS)

    @app.get("/{segment}.ts", tags=["Stream"], summary="HLS media segment")
    async def get_segment(segment: str, service: StreamerService = Depends(get_streamer)):
        """Serve one media segment and keep the stream alive."""
        path = service.segment_requested(f"{segment}.ts")
        if path is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Segment {segment}.ts not found",
            )
        return FileResponse(path, media_type=SEGMENT_MEDIA_TYPE)

    app.mount(
        "/",
        StaticFiles(directory=config.stream_dir, check_dir=False),
        name="stream",
    )

    return app


app = create_app()
