"""Command-line entry point: ``python -m tripmcp`` or ``tripmcp``."""

import argparse
import logging
import os
import sys
from typing import Optional, Sequence

import uvicorn
from dotenv import load_dotenv

from .app import create_app
from .config import ProxySettings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str) -> None:
    logging.basicConfig(level=level, format=LOG_FORMAT, stream=sys.stderr, force=True)
    # httpx logs every upstream request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="tripmcp", description="Run the booking MCP server behind the Google OAuth proxy.")
    parser.add_argument("--host", default=os.environ.get("HOST", "127.0.0.1"), help="Interface to bind")
    parser.add_argument("--port", type=int, default=int(os.environ.get("PORT", "3000")), help="Port to listen on")
    parser.add_argument("--log-level", default=None, help="Override TRIPMCP_LOG_LEVEL")
    parser.add_argument("--env-file", default=".env", help="Dotenv file to load before reading settings")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    if args.env_file and os.path.exists(args.env_file):
        load_dotenv(args.env_file)

    if args.log_level:
        os.environ["TRIPMCP_LOG_LEVEL"] = args.log_level

    try:
        settings = ProxySettings.from_env()
    except ValueError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2

    configure_logging(settings.log_level)
    logger = logging.getLogger("tripmcp")
    if not settings.has_google_credentials:
        logger.warning("GOOGLE_CLIENT_ID/GOOGLE_CLIENT_SECRET are not set; sign-in will fail")

    app = create_app(settings)
    uvicorn.run(app, host=args.host, port=args.port, log_level=settings.log_level.lower())
    return 0


if __name__ == "__main__":
    sys.exit(main())
