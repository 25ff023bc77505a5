import asyncio
import logging
import socket
import time
import traceback
from typing import AsyncIterator, Optional

import websockets
from websockets.exceptions import ConnectionClosed, ConnectionClosedError, ConnectionClosedOK

from voice_gateway.config.constants import LOGGER_NAME

logger = logging.getLogger(LOGGER_NAME)

CONNECTION_TIMEOUT = 30  # seconds
SEND_TIMEOUT = 5.0  # seconds
PING_TIMEOUT = 5.0  # seconds

# WebSocket configuration for low latency
WS_MAX_SIZE = 16 * 1024 * 1024  # 16MB - large enough for audio chunks
WS_MAX_QUEUE = 32  # Small queue to prevent buffering


class RealtimeClient:
    """
    Client for one OpenAI Realtime API WebSocket connection (the AI channel of a call).

    Sends are serialized through a lock so frames from the audio path, the
    segmenter and tool results never interleave on the socket. There is no
    automatic reconnection: when the socket drops, ``messages`` ends and the
    owning call session drains.
    """

    def __init__(self, api_key: str, url: str, close_timeout: float = 3.0):
        self.api_key = api_key
        self.url = url
        self.close_timeout = close_timeout
        self.ws = None
        self._send_lock = asyncio.Lock()
        self._connection_active = False
        self._is_closing = False

    @property
    def is_connected(self) -> bool:
        return self._connection_active and self.ws is not None

    async def connect(self) -> bool:
        """
        Connect to the OpenAI Realtime WebSocket endpoint.

        Returns:
            bool: True if connection was successful, False otherwise
        """
        if self._is_closing:
            logger.warning("Cannot connect - client is closing")
            return False

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "OpenAI-Beta": "realtime=v1",
        }

        try:
            logger.info("Connecting to OpenAI Realtime API")
            logger.debug("Using headers: Authorization: Bearer [API_KEY_HIDDEN], OpenAI-Beta: realtime=v1")

            connection_start = time.time()
            # Keep-alive pings are driven by the call session
            self.ws = await asyncio.wait_for(
                websockets.connect(
                    self.url,
                    max_size=WS_MAX_SIZE,
                    max_queue=WS_MAX_QUEUE,
                    ping_interval=None,
                    close_timeout=self.close_timeout,
                    compression=None,  # Disable compression for lower latency
                    additional_headers=headers
                ),
                timeout=CONNECTION_TIMEOUT
            )
            connection_time = time.time() - connection_start
            logger.debug(f"WebSocket connection established in {connection_time:.2f} seconds")

            self._optimize_socket()

            self._connection_active = True
            logger.info("Successfully connected to OpenAI Realtime API")
            return True
        except asyncio.TimeoutError:
            logger.error(f"Timeout while connecting to OpenAI Realtime API (after {CONNECTION_TIMEOUT}s)")
            self._connection_active = False
            return False
        except Exception as e:
            logger.error(f"Failed to connect to OpenAI Realtime API: {e}")
            logger.debug(f"Connection error details: {traceback.format_exc()}")
            self._connection_active = False
            return False

    def _optimize_socket(self) -> None:
        transport = getattr(self.ws, "transport", None)
        sock = transport.get_extra_info("socket") if transport is not None else None
        if sock is None:
            return
        try:
            # Disable Nagle's algorithm to send packets immediately
            sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
            logger.debug("Optimized OpenAI socket: TCP_NODELAY enabled for low latency")
        except OSError as e:
            logger.warning(f"Could not optimize OpenAI socket: {e}")

    async def send_event(self, message: str) -> bool:
        """
        Send one JSON event to the Realtime API.

        Args:
            message: Encoded event text

        Returns:
            bool: True if the event was sent, False otherwise
        """
        if not self.is_connected:
            logger.warning("Cannot send event - connection not active")
            return False

        async with self._send_lock:
            try:
                await asyncio.wait_for(self.ws.send(message), timeout=SEND_TIMEOUT)
                return True
            except asyncio.TimeoutError:
                logger.warning("Timeout while sending event to OpenAI")
                return False
            except ConnectionClosedOK:
                logger.info("Connection closed normally while sending event")
                self._connection_active = False
                return False
            except ConnectionClosedError as e:
                logger.warning(f"Connection closed while sending event: {e}")
                self._connection_active = False
                return False
            except Exception as e:
                logger.error(f"Error sending event: {e}")
                logger.debug(f"Send error details: {traceback.format_exc()}")
                return False

    async def messages(self) -> AsyncIterator[str]:
        """
        Yield text frames from the Realtime API until the socket closes.
        """
        if self.ws is None:
            logger.error("WebSocket not initialized for receive loop")
            return

        try:
            async for message in self.ws:
                if isinstance(message, bytes):
                    logger.debug(f"Ignoring binary frame of {len(message)} bytes from OpenAI")
                    continue
                yield message
        except ConnectionClosedOK:
            logger.info("OpenAI WebSocket connection closed normally")
        except ConnectionClosedError as e:
            logger.warning(f"OpenAI WebSocket connection closed unexpectedly: {e}")
        finally:
            self._connection_active = False

    async def ping(self) -> bool:
        """
        Ping the Realtime API socket and wait for the pong.

        Returns:
            bool: True if the pong arrived in time
        """
        if not self.is_connected:
            return False
        try:
            pong_waiter = await self.ws.ping()
            await asyncio.wait_for(pong_waiter, timeout=PING_TIMEOUT)
            return True
        except (asyncio.TimeoutError, ConnectionClosed) as e:
            logger.warning(f"Ping failed: {e or type(e).__name__}, connection appears to be dead")
            self._connection_active = False
            return False

    async def close(self) -> None:
        """
        Close the WebSocket connection.
        """
        logger.info("Closing OpenAI Realtime client")
        self._is_closing = True
        self._connection_active = False
        if self.ws:
            await self.ws.close()
        logger.info("OpenAI Realtime client closed")

    def abort(self) -> None:
        """Drop the TCP connection without the closing handshake."""
        self._is_closing = True
        self._connection_active = False
        transport = getattr(self.ws, "transport", None)
        if transport is not None:
            logger.warning("Aborting OpenAI Realtime connection")
            transport.abort()
