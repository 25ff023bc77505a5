"""
Tool calling for the realtime model.

Defines the tool schema advertised in the session handshake and the
ToolDispatcher that executes tool calls against the booking collaborator.
Dispatch goes through a closed table keyed by ToolName; names outside the
table get ``{"error": "unknown_tool"}``. Every invocation ends with a result
object, because the model's turn cannot proceed until each call is answered.
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List

from pydantic import BaseModel, Field, ValidationError, field_validator

from voice_gateway.config.constants import DEFAULT_TOOL_TIMEOUT_SECONDS, LOGGER_NAME
from voice_gateway.exceptions import UpstreamError
from voice_gateway.models.session import ToolInvocation
from voice_gateway.services.booking import BookingService

logger = logging.getLogger(LOGGER_NAME)


class ToolName(str, Enum):
    """Tools the model may call."""
    FIND_AVAILABILITY = "find_availability"
    CREATE_BOOKING = "create_booking"


class _ToolArguments(BaseModel):
    @field_validator("*")
    def validate_not_blank(cls, v):
        if isinstance(v, str) and not v.strip():
            raise ValueError("must not be empty")
        return v


class FindAvailabilityArgs(_ToolArguments):
    service: str
    date: str = Field(..., description="YYYY-MM-DD in spa local time")


class CreateBookingArgs(_ToolArguments):
    name: str
    phone: str
    service: str
    start: str = Field(..., description="ISO8601 start time in spa timezone")


TOOL_SCHEMAS: List[Dict[str, Any]] = [
    {
        "type": "function",
        "name": ToolName.FIND_AVAILABILITY.value,
        "description": "Get available time slots on a given date for a specific service.",
        "parameters": {
            "type": "object",
            "properties": {
                "service": {"type": "string"},
                "date": {"type": "string", "description": "YYYY-MM-DD in spa local time"},
            },
            "required": ["service", "date"],
        },
    },
    {
        "type": "function",
        "name": ToolName.CREATE_BOOKING.value,
        "description": "Create a booking at a specified start time.",
        "parameters": {
            "type": "object",
            "properties": {
                "name": {"type": "string"},
                "phone": {"type": "string"},
                "service": {"type": "string"},
                "start": {"type": "string", "description": "ISO8601 start time in spa timezone"},
            },
            "required": ["name", "phone", "service", "start"],
        },
    },
]


ToolHandler = Callable[[Dict[str, Any]], Awaitable[Dict[str, Any]]]


class ToolDispatcher:
    """
    Executes tool invocations against the booking collaborator.

    ``dispatch`` never raises: collaborator errors, bad arguments, unknown
    tools and timeouts all become ``{"error": ...}`` results.
    """

    def __init__(self, booking: BookingService, timeout: float = DEFAULT_TOOL_TIMEOUT_SECONDS):
        self.booking = booking
        self.timeout = timeout
        self.handlers: Dict[ToolName, ToolHandler] = {
            ToolName.FIND_AVAILABILITY: self._find_availability,
            ToolName.CREATE_BOOKING: self._create_booking,
        }

    @staticmethod
    def schemas() -> List[Dict[str, Any]]:
        return [dict(schema) for schema in TOOL_SCHEMAS]

    async def dispatch(self, invocation: ToolInvocation) -> Dict[str, Any]:
        """
        Run one tool invocation and settle it.

        Args:
            invocation: A pending invocation created from the model's request

        Returns:
            The result object to send back on the invocation's call id
        """
        try:
            tool = ToolName(invocation.name)
        except ValueError:
            logger.warning(f"Unknown tool requested: {invocation.name} (call_id={invocation.call_id})")
            return invocation.fail({"error": "unknown_tool"})

        if invocation.argument_error:
            logger.warning(f"Invalid arguments for {tool.value} (call_id={invocation.call_id})")
            return invocation.fail({"error": "invalid_arguments", "detail": invocation.argument_error})

        handler = self.handlers[tool]
        try:
            result = await asyncio.wait_for(handler(invocation.arguments), timeout=self.timeout)
        except ValidationError as e:
            fields = sorted({str(err["loc"][0]) for err in e.errors() if err.get("loc")})
            logger.warning(f"Invalid arguments for {tool.value}: {fields} (call_id={invocation.call_id})")
            return invocation.fail({"error": "invalid_arguments", "detail": f"invalid or missing: {', '.join(fields)}"})
        except asyncio.TimeoutError:
            logger.error(f"Tool {tool.value} timed out after {self.timeout}s (call_id={invocation.call_id})")
            return invocation.fail({"error": "timeout"})
        except UpstreamError as e:
            logger.warning(f"Booking backend error in {tool.value} (call_id={invocation.call_id}): {e}")
            return invocation.fail({"error": str(e) or "upstream_error"})
        except Exception as e:
            logger.error(f"Tool {tool.value} failed (call_id={invocation.call_id}): {type(e).__name__}")
            return invocation.fail({"error": str(e) or type(e).__name__})

        logger.info(f"Tool {tool.value} resolved (call_id={invocation.call_id})")
        return invocation.resolve(result)

    async def _find_availability(self, arguments: Dict[str, Any]) -> Dict[str, Any]:
        args = FindAvailabilityArgs(**arguments)
        slots = await self.booking.find_availability(args.service, args.date)
        return {"slots": [slot.model_dump(exclude_none=True) for slot in slots]}

    async def _create_booking(self, arguments: Dict[str, Any]) -> Dict[str, Any]:
        args = CreateBookingArgs(**arguments)
        outcome = await self.booking.create_booking(args.name, args.phone, args.service, args.start)
        return outcome.model_dump(exclude_none=True)
