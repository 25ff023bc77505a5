"""
Run script for starting the voice gateway server.

This script configures and starts the FastAPI server with WebSocket settings
suited to real-time audio streaming between Twilio and OpenAI.

Usage:
    python run.py [--port PORT] [--host HOST] [--log-level LEVEL]
"""

import argparse
import os
import sys

import dotenv
import uvicorn

from voice_gateway.config.logging_config import configure_logging
from voice_gateway.config.settings import Settings

# Configure logging
logger = configure_logging()


def parse_args(settings: Settings):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Start the voice gateway server"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=settings.port,
        help="Port to run the server on (default: 8000 or PORT env var)",
    )
    parser.add_argument(
        "--host",
        default=settings.host,
        help="Host to bind the server to (default: 0.0.0.0 or HOST env var)",
    )
    parser.add_argument(
        "--log-level",
        default=settings.log_level,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (default: INFO or LOG_LEVEL env var)",
    )
    return parser.parse_args()


def main():
    """Main entry point for starting the server."""
    dotenv.load_dotenv()
    settings = Settings.from_env()
    args = parse_args(settings)

    if not settings.openai_api_key:
        logger.error("OPENAI_API_KEY environment variable not set")
        print("Error: OPENAI_API_KEY environment variable is required")
        sys.exit(1)

    logger.info(f"Starting server on http://{args.host}:{args.port}")
    logger.info(f"Log level: {args.log_level}")

    uvicorn.run(
        "voice_gateway.main:app",
        host=args.host,
        port=args.port,
        log_level=args.log_level.lower(),
        http="h11",
        # Disable access logs, we have our own logging
        access_log=False,
        ws_ping_interval=settings.keepalive_interval_seconds,
        reload=os.getenv("ENV", "production").lower() == "development",
    )


if __name__ == "__main__":
    main()
