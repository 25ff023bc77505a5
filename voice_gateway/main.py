"""
FastAPI server for the Twilio Media Streams to OpenAI Realtime voice gateway.

This module initializes and configures the FastAPI application that serves as
the media-stream endpoint for Twilio. Each carrier WebSocket connection becomes
one call session bridged to an OpenAI Realtime connection; the model can look
up availability and create bookings through tool calls during the call.

The server also exposes health, readiness and info endpoints, and closes every
active call on shutdown.
"""

import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path

import dotenv
from fastapi import FastAPI, Request, WebSocket
from fastapi.responses import JSONResponse

from voice_gateway.config.constants import SERVICE_NAME, SERVICE_VERSION
from voice_gateway.config.logging_config import configure_logging
from voice_gateway.config.settings import Settings
from voice_gateway.models.registry import SessionRegistry
from voice_gateway.utils.redact import partial_redact
from voice_gateway.websocket_manager import WebSocketManager

# Load environment variables from .env file if it exists
env_path = Path(".") / ".env"
if env_path.exists():
    dotenv.load_dotenv(env_path)

settings = Settings.from_env()

# Configure logging
logger = configure_logging(settings.log_level)

registry = SessionRegistry()
websocket_manager = WebSocketManager(settings, registry)
started_at = time.time()


@asynccontextmanager
async def lifespan(app: FastAPI):
    missing = settings.missing_required()
    if missing:
        logger.warning(f"Missing configuration: {', '.join(missing)}")
    logger.info(f"OpenAI API key: {partial_redact(settings.openai_api_key)}")
    logger.info(f"{SERVICE_NAME} {SERVICE_VERSION} started")
    yield
    await registry.shutdown("server_shutdown")
    logger.info(f"{SERVICE_NAME} stopped")


# Create FastAPI application
app = FastAPI(
    title="Voice Gateway",
    description="Bridge between Twilio Media Streams and the OpenAI Realtime API",
    version=SERVICE_VERSION,
    lifespan=lifespan,
)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(f"Request error on {request.method} {request.url.path}: {exc}")
    status_code = getattr(exc, "status_code", 500)
    return JSONResponse(
        status_code=status_code,
        content={"error": {"message": str(exc) or "Internal server error", "code": status_code}},
    )


@app.websocket("/ws/twilio")
async def twilio_media_stream(websocket: WebSocket):
    """WebSocket endpoint for Twilio Media Streams.

    Twilio connects here from a <Connect><Stream> TwiML verb. The connection
    carries the connected/start/media/mark/stop events for one call and
    receives the assistant's audio, marks and clear commands.
    """
    await websocket_manager.handle_websocket(websocket)


@app.get("/health")
async def health_check():
    """Health check endpoint for monitoring system status.

    Returns:
        dict: Service status, uptime and call counters.
    """
    return {
        "status": "healthy",
        "service": SERVICE_NAME,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime": round(time.time() - started_at, 3),
        "calls": registry.snapshot(),
        "version": SERVICE_VERSION,
    }


@app.get("/ready")
async def readiness_check():
    """Readiness probe: fails while required credentials are missing."""
    missing = settings.missing_required()
    if missing:
        return JSONResponse(
            status_code=503,
            content={
                "ready": False,
                "message": "Missing required configuration",
                "missing": missing,
            },
        )
    return {"ready": True}


@app.get("/")
async def root():
    """Root endpoint to display basic information about the API.

    Returns:
        dict: Basic information about the API and its purpose.
    """
    return {
        "name": "Voice Gateway",
        "description": "Bridge between Twilio Media Streams and the OpenAI Realtime API",
        "version": SERVICE_VERSION,
        "endpoints": {
            "/ws/twilio": "WebSocket endpoint for Twilio Media Streams",
            "/health": "Health check endpoint",
            "/ready": "Readiness check endpoint",
        },
    }


if __name__ == "__main__":
    import uvicorn

    logger.info(f"Starting server on http://{settings.host}:{settings.port}")
    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        ws_ping_interval=settings.keepalive_interval_seconds,
        ws_max_size=16777216,  # 16MB - large enough for audio chunks
        ws_ping_timeout=20,
        http="h11"
    )
