#!/usr/bin/env python3
"""Uvicorn launcher for the checkout API.

Usage:
    tap-checkout
    tap-checkout --port 4000 --reload
    python -m tap_checkout.server --host 127.0.0.1
"""

import argparse
import logging
import sys
from typing import Optional

import uvicorn

from .config import GatewayConfig

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def create_parser(default_port: int) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Tap checkout connector API server")
    parser.add_argument("--host", default="0.0.0.0", help="Bind host (default: 0.0.0.0)")
    parser.add_argument(
        "--port", type=int, default=None,
        help=f"Bind port (default: PORT or {default_port})",
    )
    parser.add_argument("--reload", action="store_true", help="Enable hot reload for development")
    parser.add_argument("--env-file", default=None, help="Path to a .env file to load")
    return parser


def main(argv: Optional[list] = None) -> int:
    """Main entry point for the server."""
    config = GatewayConfig.from_env()
    args = create_parser(config.port).parse_args(argv)
    if args.env_file:
        config = GatewayConfig.from_env(args.env_file)
    port = args.port if args.port is not None else config.port

    logger.info(f"Server on :{port} (Tap API {config.api_base})")
    uvicorn.run(
        "tap_checkout.api:app",
        host=args.host,
        port=port,
        reload=args.reload,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
