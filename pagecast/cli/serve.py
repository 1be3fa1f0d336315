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

"""PageCast Server CLI.

Command-line interface for starting the PageCast streaming service.

Usage:
    pagecast-serve [--host HOST] [--port PORT] [--url URL] [--selector SELECTOR]

    Or with Python:
    python -m pagecast

Every option can also be set through its PAGECAST_* environment variable.
Command-line values are exported to the environment so the application
module picks them up when uvicorn imports it.
"""

from __future__ import annotations

import argparse
import os
import sys
from typing import List, Optional

import uvicorn

from pagecast.config import load_config
from pagecast.exceptions import ConfigurationError
from pagecast.utils.logger import setup_logger

BANNER = r"""
 ____                  ____          _
|  _ \ __ _  __ _  ___/ ___|__ _ ___| |_
| |_) / _` |/ _` |/ _ \ |   / _` / __| __|
|  __/ (_| | (_| |  __/ |__| (_| \__ \ |_
|_|   \__,_|\__, |\___|\____\__,_|___/\__|
            |___/"""


def build_parser() -> argparse.ArgumentParser:
    """Create the argument parser for pagecast-serve."""
    parser = argparse.ArgumentParser(
        description="Stream a region of a web page as HLS video",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  pagecast-serve                                # Default page on port 3000
  pagecast-serve --port 8080                    # Custom port
  pagecast-serve --url https://example.com --selector main
  pagecast-serve --audio music.mp3              # Loop an audio track

  # Or via environment variables:
  PAGECAST_URL=https://example.com PAGECAST_SELECTOR=main pagecast-serve
        """,
    )

    parser.add_argument(
        "--host",
        default=os.environ.get("PAGECAST_HOST", "0.0.0.0"),
        help="Host to bind to (default: 0.0.0.0)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=int(os.environ.get("PAGECAST_PORT", "3000")),
        help="Port to bind to (default: 3000)",
    )
    parser.add_argument(
        "--url",
        default=None,
        help="Page to render (default: PAGECAST_URL or the built-in weather page)",
    )
    parser.add_argument(
        "--selector",
        default=None,
        help="CSS selector of the element to stream (default: #container)",
    )
    parser.add_argument(
        "--stream-dir",
        default=None,
        help="Directory for the manifest and segments (default: ./hls-stream)",
    )
    parser.add_argument(
        "--audio",
        default=None,
        help="Audio file looped under the video (default: silence)",
    )
    parser.add_argument(
        "--inactivity-timeout",
        type=float,
        default=None,
        help="Seconds without requests before the stream stops (default: 10)",
    )
    parser.add_argument(
        "--headful",
        action="store_true",
        help="Show the browser window",
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("PAGECAST_LOG_LEVEL", "info").lower(),
        choices=["debug", "info", "warning", "error", "critical"],
        help="Log level (default: info)",
    )
    return parser


def apply_to_environment(args: argparse.Namespace) -> None:
    """Export command-line options as PAGECAST_* environment variables."""
    os.environ["PAGECAST_HOST"] = args.host
    os.environ["PAGECAST_PORT"] = str(args.port)
    os.environ["PAGECAST_LOG_LEVEL"] = args.log_level.upper()
    if args.url:
        os.environ["PAGECAST_URL"] = args.url
    if args.selector:
        os.environ["PAGECAST_SELECTOR"] = args.selector
    if args.stream_dir:
        os.environ["PAGECAST_STREAM_DIR"] = args.stream_dir
    if args.audio:
        os.environ["PAGECAST_AUDIO"] = args.audio
    if args.inactivity_timeout is not None:
        os.environ["PAGECAST_INACTIVITY_TIMEOUT"] = str(args.inactivity_timeout)
    if args.headful:
        os.environ["PAGECAST_HEADLESS"] = "false"


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point for the serve command."""
    args = build_parser().parse_args(argv)
    apply_to_environment(args)

    try:
        config = load_config()
    except ConfigurationError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        sys.exit(1)

    setup_logger(level=config.logging_level)

    print()
    print(BANNER)
    print()
    print("  Web Page to HLS Streaming")
    print()
    print(f"  Host:      {config.host}")
    print(f"  Port:      {config.port}")
    print(f"  URL:       {config.target_url}")
    print(f"  Selector:  {config.target_selector}")
    print(f"  Stream:    {config.stream_dir}")
    print(f"  Audio:     {config.encoder.audio_path or '(silence)'}")
    print(f"  Idle stop: {config.inactivity_timeout:g}s")
    print(f"  Log Level: {args.log_level}")
    print()
    print(f"  Player:    http://{config.host}:{config.port}/")
    print(f"  Manifest:  http://{config.host}:{config.port}/stream.m3u8")
    print(f"  Health:    http://{config.host}:{config.port}/health")
    print()

    # One worker: the stream session and browser live in this process
    uvicorn.run(
        "pagecast.service.app:app",
        host=config.host,
        port=config.port,
        workers=1,
        log_level=args.log_level,
    )


if __name__ == "__main__":
    main()
