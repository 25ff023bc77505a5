"""
Bot module: the per-call bridge between Twilio and the OpenAI Realtime API.

Key components:
- CallSession: State machine owning one carrier socket and one AI socket,
  routing decoded events from both through its handler tables.
- RealtimeClient: Client for one OpenAI Realtime WebSocket connection with
  serialized sends, keep-alive pings and forced abort.
- UtteranceSegmenter: Decides when buffered caller audio is a complete
  utterance to commit.
- ToolDispatcher: Runs the model's tool calls against the booking collaborator.

Usage examples:
```python
from voice_gateway.bot import CallSession, ToolDispatcher
from voice_gateway.services.booking import StubBookingService

dispatcher = ToolDispatcher(StubBookingService())
session = CallSession("call_1", websocket, settings, dispatcher)
await session.handle_carrier_message(frame_text)
```
"""

from voice_gateway.bot.call_session import CallSession
from voice_gateway.bot.realtime_api import RealtimeClient
from voice_gateway.bot.segmenter import UtteranceSegmenter
from voice_gateway.bot.tools import ToolDispatcher, ToolName

__all__ = ["CallSession", "RealtimeClient", "UtteranceSegmenter", "ToolDispatcher", "ToolName"]
