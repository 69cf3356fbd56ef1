#!/usr/bin/env python3

import argparse
import dataclasses
import logging
import sys
from pathlib import Path

import uvicorn

from signbank.api import create_asgi_app
from signbank.config import BACKENDS, Settings

logging.basicConfig(level=logging.INFO, format='%(levelname)s: %(message)s')
logger = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="SignBank - sign video upload, lookup and live acceleration server"
    )

    parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="Interface to bind (default: $HOST or 0.0.0.0)"
    )

    parser.add_argument(
        "-p", "--port",
        type=int,
        default=None,
        help="HTTP port (default: $PORT or 3000)"
    )

    parser.add_argument(
        "-b", "--backend",
        choices=BACKENDS,
        default=None,
        help="Index and counter storage (default: $SIGNBANK_BACKEND or memory)"
    )

    parser.add_argument(
        "-m", "--media-dir",
        type=Path,
        default=None,
        help="Store clip payloads as files in this directory"
    )

    parser.add_argument(
        "--simulate-acceleration",
        action="store_true",
        help="Publish synthetic accelerometer samples"
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose debug logging"
    )

    return parser.parse_args(argv)


def build_settings(args) -> Settings:
    settings = Settings.from_env()
    overrides = {}
    if args.host is not None:
        overrides["host"] = args.host
    if args.port is not None:
        overrides["port"] = args.port
    if args.backend is not None:
        overrides["backend"] = args.backend
    if args.media_dir is not None:
        overrides["media_dir"] = args.media_dir
    if args.simulate_acceleration:
        overrides["simulate_acceleration"] = True
    return dataclasses.replace(settings, **overrides)


def main(argv=None):
    args = parse_args(argv)

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        settings = build_settings(args)
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(2)

    app = create_asgi_app(settings)
    print(f"Starting SignBank on {settings.host}:{settings.port} ({settings.backend} backend)")
    uvicorn.run(app, host=settings.host, port=settings.port, log_level="info")


if __name__ == "__main__":
    main()
