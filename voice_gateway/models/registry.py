"""
Session registry module for the voice gateway.

This module provides the SessionRegistry class, the process-wide table of
active call sessions. It assigns call identifiers, keeps the active and total
call counters used by the health endpoint, and closes every remaining session
when the server shuts down.
"""

import asyncio
import logging
import threading
import time
from typing import Any, Dict, List

from voice_gateway.config.constants import LOGGER_NAME

logger = logging.getLogger(LOGGER_NAME)


class SessionRegistry:
    """
    Registry of active call sessions.

    Counters and the session table are only touched under a lock, so they stay
    consistent no matter which task or thread registers or releases a call.
    """

    def __init__(self):
        """Initialize an empty registry."""
        self._lock = threading.Lock()
        self._sessions: Dict[str, Any] = {}
        self._sequence = 0
        self._total_calls = 0

    def next_call_id(self) -> str:
        """
        Allocate a new call identifier.

        Returns:
            An identifier of the form ``call_<epoch-ms>_<n>``
        """
        with self._lock:
            self._sequence += 1
            return f"call_{int(time.time() * 1000)}_{self._sequence}"

    def register(self, call_id: str, session: Any) -> None:
        """
        Add a session to the registry and count the call.

        Args:
            call_id: Identifier from next_call_id
            session: The call session object
        """
        with self._lock:
            if call_id in self._sessions:
                raise ValueError(f"Call {call_id} is already registered")
            self._sessions[call_id] = session
            self._total_calls += 1
            active = len(self._sessions)
        logger.info(f"Registered call {call_id} (active={active})")

    def unregister(self, call_id: str) -> bool:
        """
        Remove a session from the registry.

        Args:
            call_id: Identifier of the session to remove

        Returns:
            True if the session was registered, False if it was already gone
        """
        with self._lock:
            removed = self._sessions.pop(call_id, None) is not None
            active = len(self._sessions)
        if removed:
            logger.info(f"Unregistered call {call_id} (active={active})")
        return removed

    @property
    def active_count(self) -> int:
        with self._lock:
            return len(self._sessions)

    @property
    def total_count(self) -> int:
        with self._lock:
            return self._total_calls

    def snapshot(self) -> Dict[str, int]:
        """Counters for the health endpoint."""
        with self._lock:
            return {"total": self._total_calls, "active": len(self._sessions)}

    def sessions(self) -> List[Any]:
        with self._lock:
            return list(self._sessions.values())

    async def shutdown(self, reason: str = "server_shutdown") -> None:
        """
        Close every active session.

        Args:
            reason: Close reason recorded on each session
        """
        sessions = self.sessions()
        if not sessions:
            return
        logger.info(f"Closing {len(sessions)} active call(s): {reason}")
        results = await asyncio.gather(
            *(session.close(reason) for session in sessions), return_exceptions=True
        )
        for session, result in zip(sessions, results):
            if isinstance(result, Exception):
                logger.error(f"Error closing call {getattr(session, 'call_id', '?')}: {result}")
