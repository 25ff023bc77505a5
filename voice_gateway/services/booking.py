"""
Booking collaborator used by the tool dispatcher.

BookingService is the contract the scheduling backend must satisfy. The
gateway ships StubBookingService, which answers with no availability and
declines bookings, so calls work end to end before a real backend is wired in.
"""

import logging
from abc import ABC, abstractmethod
from typing import List, Optional

from pydantic import BaseModel, Field

from voice_gateway.config.constants import LOGGER_NAME

logger = logging.getLogger(LOGGER_NAME)


class TimeSlot(BaseModel):
    """An open appointment slot."""
    start_at: str = Field(..., description="ISO8601 start time")
    end_at: str = Field(..., description="ISO8601 end time")
    service_variation_id: Optional[str] = None


class BookingResult(BaseModel):
    """Outcome of a booking attempt."""
    ok: bool
    confirmation: Optional[str] = None
    reason: Optional[str] = None


class BookingService(ABC):
    """Scheduling backend the AI model books against.

    Implementations raise UpstreamError when the backend rejects or fails a
    request; the dispatcher reports its message to the model.
    """

    @abstractmethod
    async def find_availability(self, service: str, date: str) -> List[TimeSlot]:
        """Return the open slots for ``service`` on ``date`` (YYYY-MM-DD)."""

    @abstractmethod
    async def create_booking(self, name: str, phone: str, service: str, start: str) -> BookingResult:
        """Book ``service`` at ``start`` for the named customer."""


class StubBookingService(BookingService):
    """Placeholder backend: no availability, every booking declined."""

    async def find_availability(self, service: str, date: str) -> List[TimeSlot]:
        logger.debug(f"Stub availability lookup for service={service} date={date}")
        return []

    async def create_booking(self, name: str, phone: str, service: str, start: str) -> BookingResult:
        logger.debug(f"Stub booking request for service={service} start={start}")
        return BookingResult(ok=False, reason="booking backend not configured")
