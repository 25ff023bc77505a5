import asyncio

import pytest

from voice_gateway.bot.tools import TOOL_SCHEMAS, ToolDispatcher, ToolName
from voice_gateway.exceptions import UpstreamError
from voice_gateway.models.session import ToolInvocation, ToolStatus
from voice_gateway.services.booking import BookingResult, BookingService, StubBookingService, TimeSlot


class RecordingBookingService(BookingService):
    """Returns canned answers and records what it was asked."""

    def __init__(self, slots=None, result=None, error=None, delay=0.0):
        self.slots = slots or []
        self.result = result or BookingResult(ok=True, confirmation="BK-42")
        self.error = error
        self.delay = delay
        self.calls = []

    async def find_availability(self, service, date):
        self.calls.append(("find_availability", service, date))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.slots

    async def create_booking(self, name, phone, service, start):
        self.calls.append(("create_booking", name, phone, service, start))
        if self.error:
            raise self.error
        return self.result


def invocation(name, arguments, call_id="call_1"):
    return ToolInvocation.from_request(call_id, name, arguments)


def test_tool_table_is_closed():
    dispatcher = ToolDispatcher(StubBookingService())
    assert set(dispatcher.handlers) == {ToolName.FIND_AVAILABILITY, ToolName.CREATE_BOOKING}


def test_schemas_describe_both_tools():
    dispatcher = ToolDispatcher(StubBookingService())
    schemas = {schema["name"]: schema for schema in dispatcher.schemas()}
    assert schemas["find_availability"]["parameters"]["required"] == ["service", "date"]
    assert schemas["create_booking"]["parameters"]["required"] == ["name", "phone", "service", "start"]
    assert all(schema["type"] == "function" for schema in TOOL_SCHEMAS)


@pytest.mark.asyncio
async def test_find_availability_with_stub_returns_no_slots():
    dispatcher = ToolDispatcher(StubBookingService())
    request = invocation("find_availability", '{"service": "massage", "date": "2024-06-01"}')

    result = await dispatcher.dispatch(request)

    assert result == {"slots": []}
    assert request.status is ToolStatus.RESOLVED
    assert request.result == {"slots": []}


@pytest.mark.asyncio
async def test_find_availability_returns_slots():
    booking = RecordingBookingService(slots=[
        TimeSlot(start_at="2024-06-01T10:00:00-07:00", end_at="2024-06-01T11:00:00-07:00"),
        TimeSlot(start_at="2024-06-01T13:00:00-07:00", end_at="2024-06-01T14:00:00-07:00",
                 service_variation_id="VAR1"),
    ])
    dispatcher = ToolDispatcher(booking)

    result = await dispatcher.dispatch(invocation("find_availability", {"service": "massage", "date": "2024-06-01"}))

    assert booking.calls == [("find_availability", "massage", "2024-06-01")]
    assert result == {"slots": [
        {"start_at": "2024-06-01T10:00:00-07:00", "end_at": "2024-06-01T11:00:00-07:00"},
        {"start_at": "2024-06-01T13:00:00-07:00", "end_at": "2024-06-01T14:00:00-07:00",
         "service_variation_id": "VAR1"},
    ]}


@pytest.mark.asyncio
async def test_create_booking_success_and_decline():
    booking = RecordingBookingService()
    dispatcher = ToolDispatcher(booking)
    args = {"name": "Sam", "phone": "4155550123", "service": "facial", "start": "2024-06-01T10:00:00-07:00"}

    assert await dispatcher.dispatch(invocation("create_booking", args)) == {"ok": True, "confirmation": "BK-42"}

    declined = await ToolDispatcher(StubBookingService()).dispatch(invocation("create_booking", args))
    assert declined == {"ok": False, "reason": "booking backend not configured"}


@pytest.mark.asyncio
async def test_unknown_tool():
    request = invocation("cancel_booking", "{}")
    result = await ToolDispatcher(StubBookingService()).dispatch(request)

    assert result == {"error": "unknown_tool"}
    assert request.status is ToolStatus.FAILED


@pytest.mark.asyncio
async def test_unparseable_arguments():
    request = invocation("find_availability", "{service: massage")
    result = await ToolDispatcher(StubBookingService()).dispatch(request)

    assert result["error"] == "invalid_arguments"
    assert "JSON" in result["detail"]


@pytest.mark.asyncio
async def test_missing_and_blank_arguments():
    dispatcher = ToolDispatcher(RecordingBookingService())

    missing = await dispatcher.dispatch(invocation("create_booking", {"name": "Sam", "service": "facial"}))
    assert missing == {"error": "invalid_arguments", "detail": "invalid or missing: phone, start"}

    blank = await dispatcher.dispatch(invocation("find_availability", {"service": " ", "date": "2024-06-01"}))
    assert blank == {"error": "invalid_arguments", "detail": "invalid or missing: service"}


@pytest.mark.asyncio
async def test_collaborator_exception_becomes_error_result():
    request = invocation("find_availability", {"service": "massage", "date": "2024-06-01"})
    dispatcher = ToolDispatcher(RecordingBookingService(error=ConnectionError("backend down")))

    assert await dispatcher.dispatch(request) == {"error": "backend down"}
    assert request.status is ToolStatus.FAILED


@pytest.mark.asyncio
async def test_upstream_error_message_is_reported():
    dispatcher = ToolDispatcher(RecordingBookingService(error=UpstreamError("slot no longer available")))
    args = {"name": "Sam", "phone": "4155550123", "service": "facial", "start": "2024-06-01T10:00:00-07:00"}

    assert await dispatcher.dispatch(invocation("create_booking", args)) == {"error": "slot no longer available"}


@pytest.mark.asyncio
async def test_exception_without_message_uses_type_name():
    dispatcher = ToolDispatcher(RecordingBookingService(error=KeyError()))
    result = await dispatcher.dispatch(invocation("find_availability", {"service": "massage", "date": "2024-06-01"}))
    assert result == {"error": "KeyError"}


@pytest.mark.asyncio
async def test_slow_collaborator_times_out():
    dispatcher = ToolDispatcher(RecordingBookingService(delay=1.0), timeout=0.05)
    request = invocation("find_availability", {"service": "massage", "date": "2024-06-01"})

    assert await dispatcher.dispatch(request) == {"error": "timeout"}
    assert request.status is ToolStatus.FAILED


def test_invocation_resolves_exactly_once():
    request = invocation("find_availability", {})
    request.resolve({"slots": []})

    with pytest.raises(RuntimeError):
        request.resolve({"slots": []})
    with pytest.raises(RuntimeError):
        request.fail({"error": "late"})
    assert request.result == {"slots": []}


def test_invocation_argument_parsing():
    assert invocation("x", None).arguments == {}
    assert invocation("x", "").arguments == {}
    assert invocation("x", '{"a": 1}').arguments == {"a": 1}
    assert invocation("x", "[1, 2]").argument_error == "arguments must be an object"
    assert invocation("x", 42).argument_error == "arguments must be an object"
