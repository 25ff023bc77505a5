"""
WebSocket connection manager for the Twilio Media Streams endpoint.

This module implements the server side of the carrier connection:
- Accept the carrier WebSocket and tune its TCP socket for low latency
- Create a CallSession for the connection and register it
- Pump every received frame into the session until either side ends the call
- Guarantee the session is closed and released when the loop exits

All protocol handling lives in the call session; the manager only owns the
receive loop and the connection lifecycle.
"""

import logging
import socket
import time
from typing import Callable, Optional

from fastapi import WebSocket, WebSocketDisconnect

from voice_gateway.bot.call_session import CallSession
from voice_gateway.bot.tools import ToolDispatcher
from voice_gateway.config.constants import LOGGER_NAME
from voice_gateway.config.settings import Settings
from voice_gateway.models.registry import SessionRegistry
from voice_gateway.services.booking import BookingService, StubBookingService

logger = logging.getLogger(LOGGER_NAME)

SessionFactory = Callable[..., CallSession]


class WebSocketManager:
    """Accepts carrier connections and runs one CallSession per connection.

    Args:
        settings: Gateway settings handed to every session
        registry: Process-wide session registry
        booking: Booking collaborator used by the tool dispatcher
        session_factory: Builds the session for a new connection
    """

    def __init__(
        self,
        settings: Settings,
        registry: Optional[SessionRegistry] = None,
        booking: Optional[BookingService] = None,
        session_factory: SessionFactory = CallSession,
    ):
        self.settings = settings
        self.registry = registry or SessionRegistry()
        self.dispatcher = ToolDispatcher(booking or StubBookingService(), timeout=settings.tool_timeout_seconds)
        self.session_factory = session_factory

    async def _optimize_socket(self, websocket: WebSocket) -> None:
        """
        Optimize the WebSocket's underlying TCP socket for low-latency transmission.

        Args:
            websocket: The FastAPI WebSocket connection
        """
        try:
            client = websocket.client
            if hasattr(client, "sock") and client.sock is not None:
                # Disable Nagle's algorithm to send packets immediately
                client.sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
                logger.info("Optimized socket: TCP_NODELAY enabled for low latency")
        except OSError as e:
            logger.warning(f"Could not optimize socket: {e}")

    def create_session(self, websocket: WebSocket) -> CallSession:
        call_id = self.registry.next_call_id()
        session = self.session_factory(
            call_id=call_id,
            carrier=websocket,
            settings=self.settings,
            dispatcher=self.dispatcher,
            registry=self.registry,
        )
        self.registry.register(call_id, session)
        return session

    async def handle_websocket(self, websocket: WebSocket):
        """Handle a carrier WebSocket connection throughout its lifecycle.

        Args:
            websocket (WebSocket): The FastAPI WebSocket connection object

        The loop runs until the carrier disconnects or the session closes
        itself (stop event, idle timeout, AI channel loss, fatal protocol
        error). The session is always closed and unregistered on exit.
        """
        await websocket.accept()
        await self._optimize_socket(websocket)
        session = self.create_session(websocket)
        logger.info(f"Carrier WebSocket connection established for call {session.call_id}")

        try:
            while not session.is_closed:
                data = await websocket.receive_text()
                await session.handle_carrier_message(data, received_at=time.monotonic())
        except WebSocketDisconnect as e:
            logger.info(f"Carrier disconnected from call {session.call_id} (code={e.code})")
            await session.handle_carrier_disconnect()
        except Exception as e:
            if session.accepting_events:
                logger.error(f"Error in carrier WebSocket loop for call {session.call_id}: {e}", exc_info=True)
            else:
                logger.debug(f"Carrier loop for call {session.call_id} ended after close: {type(e).__name__}")
        finally:
            await session.close("carrier_loop_ended")
            self.registry.unregister(session.call_id)
            logger.info(f"Carrier WebSocket connection closed for call {session.call_id}")
