"""
Call session: the state machine that bridges one carrier media stream with one
OpenAI Realtime connection.

A session owns exactly one carrier WebSocket and one RealtimeClient for its
lifetime. Carrier frames are fed in by the WebSocket manager through
``handle_carrier_message``; realtime frames are read by a listener task and
fed through ``handle_realtime_message``. Both are decoded into internal events
and routed through handler tables keyed by event class.

Lifecycle::

    Idle -> Negotiating -> Active -> Draining -> Closed
      \\________________\\_________\\_____________^   (fatal errors, timeouts)

Audio flows to the AI channel only while Negotiating/Active, and to the
carrier only while Active/Draining. Closed is terminal.
"""

import asyncio
import logging
import time
from typing import Callable, Dict, List, Optional, Set

from fastapi import WebSocket
from starlette.websockets import WebSocketState

from voice_gateway.bot.realtime_api import RealtimeClient
from voice_gateway.bot.segmenter import UtteranceSegmenter
from voice_gateway.bot.tools import ToolDispatcher
from voice_gateway.codec.carrier import (
    decode_carrier_message,
    encode_carrier_clear,
    encode_carrier_mark,
    encode_carrier_media,
)
from voice_gateway.codec.realtime import (
    decode_realtime_message,
    encode_audio_append,
    encode_audio_commit,
    encode_function_call_result,
    encode_response_create,
    encode_session_update,
)
from voice_gateway.config.constants import LOGGER_NAME
from voice_gateway.config.settings import Settings
from voice_gateway.exceptions import ChannelDisconnect, ConfigurationError, ProtocolDecodeError
from voice_gateway.models.events import (
    CarrierConnected,
    CarrierMark,
    CarrierMedia,
    CarrierStarted,
    CarrierStop,
    RealtimeAudioDelta,
    RealtimeError,
    RealtimeResponseCompleted,
    RealtimeSessionReady,
    RealtimeToolCall,
    RealtimeTranscript,
    RealtimeUnhandled,
)
from voice_gateway.models.session import (
    ALLOWED_TRANSITIONS,
    INBOUND_AUDIO_STATES,
    OUTBOUND_AUDIO_STATES,
    CallState,
    ToolInvocation,
    TranscriptEntry,
)
from voice_gateway.utils.redact import redact_pii

logger = logging.getLogger(LOGGER_NAME)

RealtimeClientFactory = Callable[[Settings], RealtimeClient]


def default_realtime_client_factory(settings: Settings) -> RealtimeClient:
    return RealtimeClient(
        settings.require_realtime_credentials(),
        settings.realtime_endpoint,
        close_timeout=settings.close_grace_seconds,
    )


class CallSession:
    """
    Bridge state for a single phone call.

    Args:
        call_id: Gateway-assigned call identifier, used in every log line
        carrier: The accepted carrier WebSocket
        settings: Gateway settings
        dispatcher: Tool dispatcher used for the model's tool calls
        registry: Session registry to release the call from on cleanup
        realtime_client_factory: Builds the AI channel client
        segmenter: Utterance segmenter; built from settings when omitted
        clock: Monotonic clock used for idle accounting
    """

    def __init__(
        self,
        call_id: str,
        carrier: WebSocket,
        settings: Settings,
        dispatcher: ToolDispatcher,
        registry=None,
        realtime_client_factory: RealtimeClientFactory = default_realtime_client_factory,
        segmenter: Optional[UtteranceSegmenter] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.call_id = call_id
        self.settings = settings
        self.dispatcher = dispatcher
        self.stream_id: Optional[str] = None
        self.carrier_call_id: Optional[str] = None
        self.media_format: Optional[str] = None

        self._carrier = carrier
        self._realtime: Optional[RealtimeClient] = None
        self._registry = registry
        self._realtime_client_factory = realtime_client_factory
        self._segmenter = segmenter or UtteranceSegmenter(settings.quiet_threshold_ms)
        self._clock = clock

        self._state = CallState.IDLE
        self._closing = False
        self._state_history: List[CallState] = [CallState.IDLE]
        self._carrier_lock = asyncio.Lock()

        self.started_at = time.time()
        self.last_inbound_audio_at: Optional[float] = None
        self.transcript: List[TranscriptEntry] = []
        self.pending_tools: Dict[str, ToolInvocation] = {}
        self._responses_completed = 0
        self._assistant_speaking = False
        self._frames_in = 0
        self._frames_out = 0

        self._listener_task: Optional[asyncio.Task] = None
        self._keepalive_task: Optional[asyncio.Task] = None
        self._idle_task: Optional[asyncio.Task] = None
        self._tool_tasks: Set[asyncio.Task] = set()
        self._background_tasks: Set[asyncio.Task] = set()
        self._quiet_timer: Optional[asyncio.TimerHandle] = None
        self._commit_task: Optional[asyncio.Task] = None
        self.forced_closes: Set[str] = set()

        self._carrier_handlers = {
            CarrierConnected: self._on_carrier_connected,
            CarrierStarted: self._on_carrier_started,
            CarrierMedia: self._on_carrier_media,
            CarrierStop: self._on_carrier_stop,
            CarrierMark: self._on_carrier_mark,
        }
        self._realtime_handlers = {
            RealtimeSessionReady: self._on_session_ready,
            RealtimeAudioDelta: self._on_audio_delta,
            RealtimeResponseCompleted: self._on_response_completed,
            RealtimeToolCall: self._on_tool_call,
            RealtimeTranscript: self._on_transcript,
            RealtimeError: self._on_realtime_error,
            RealtimeUnhandled: self._on_realtime_unhandled,
        }

    @property
    def state(self) -> CallState:
        return self._state

    @property
    def state_history(self) -> List[CallState]:
        return list(self._state_history)

    @property
    def is_closed(self) -> bool:
        return self._state is CallState.CLOSED

    @property
    def accepting_events(self) -> bool:
        return not self._closing and self._state is not CallState.CLOSED

    def get_transcript(self) -> List[TranscriptEntry]:
        return list(self.transcript)

    # State machine

    def _transition(self, new_state: CallState, reason: str) -> bool:
        """Move to ``new_state`` if the lifecycle allows it."""
        old_state = self._state
        if new_state not in ALLOWED_TRANSITIONS[old_state]:
            logger.warning(
                f"Call {self.call_id}: rejected transition {old_state.value} -> {new_state.value} ({reason})"
            )
            return False
        self._state = new_state
        self._state_history.append(new_state)
        logger.info(f"Call {self.call_id}: {old_state.value} -> {new_state.value} ({reason})")
        return True

    # Carrier side

    async def handle_carrier_message(self, raw, received_at: Optional[float] = None) -> None:
        """
        Decode and process one frame from the carrier socket.

        Malformed media frames are dropped; malformed start/stop frames close
        the call.
        """
        if not self.accepting_events:
            return
        try:
            event = decode_carrier_message(raw, received_at)
        except ProtocolDecodeError as e:
            if e.fatal:
                logger.error(f"Call {self.call_id}: fatal carrier protocol error: {e}")
                await self.close("carrier_protocol_error")
            else:
                logger.warning(f"Call {self.call_id}: dropping carrier frame: {e}")
            return
        await self.handle_carrier_event(event)

    async def handle_carrier_event(self, event) -> None:
        if not self.accepting_events:
            return
        handler = self._carrier_handlers.get(type(event))
        if handler is None:
            logger.warning(f"Call {self.call_id}: no handler for carrier event {type(event).__name__}")
            return
        await handler(event)

    async def handle_carrier_disconnect(self) -> None:
        """The carrier socket went away."""
        error = ChannelDisconnect("carrier")
        logger.info(f"Call {self.call_id}: {error}")
        if self._state is CallState.IDLE:
            await self.close("carrier_disconnected")
        else:
            await self.drain("carrier_disconnected")

    async def _on_carrier_connected(self, event: CarrierConnected) -> None:
        logger.debug(f"Call {self.call_id}: carrier connected (protocol={event.protocol}, version={event.version})")

    async def _on_carrier_started(self, event: CarrierStarted) -> None:
        if self._state is not CallState.IDLE:
            logger.warning(f"Call {self.call_id}: ignoring duplicate start event in state {self._state.value}")
            return

        self.stream_id = event.stream_id
        self.carrier_call_id = event.call_id
        self.media_format = f"{event.encoding}/{event.sample_rate}/{event.channels}"
        logger.info(
            f"Call {self.call_id}: stream started (streamSid={event.stream_id}, callSid={event.call_id}, "
            f"format={self.media_format}, parameters={redact_pii(event.custom_parameters)})"
        )

        try:
            self.settings.require_realtime_credentials()
        except ConfigurationError as e:
            logger.error(f"Call {self.call_id}: {e}")
            await self.close("configuration_error")
            return

        self._transition(CallState.NEGOTIATING, "carrier start")
        self.last_inbound_audio_at = self._clock()
        self._idle_task = asyncio.create_task(self._watch_idle())

        client = self._realtime_client_factory(self.settings)
        if not await client.connect():
            logger.error(f"Call {self.call_id}: could not open the AI channel")
            await self.close("ai_connect_failed")
            return
        if self._closing:
            # The call ended while the AI channel was connecting
            await client.close()
            return
        self._realtime = client
        self._listener_task = asyncio.create_task(self._listen_realtime())

        handshake = encode_session_update(
            instructions=self.settings.instructions,
            audio_format=self.settings.audio_format,
            tools=self.dispatcher.schemas(),
            voice=self.settings.openai_voice,
        )
        if not await client.send_event(handshake):
            logger.error(f"Call {self.call_id}: session handshake failed")
            await self.close("ai_handshake_failed")
            return
        if self._closing:
            return

        self._keepalive_task = asyncio.create_task(self._keepalive())
        self._transition(CallState.ACTIVE, "session configured")

    async def _on_carrier_media(self, event: CarrierMedia) -> None:
        if self._state not in INBOUND_AUDIO_STATES:
            logger.debug(f"Call {self.call_id}: dropping inbound audio in state {self._state.value}")
            return

        frame = event.frame
        self.last_inbound_audio_at = self._clock()
        self._frames_in += 1

        if self._commit_task is not None and not self._commit_task.done():
            # A timer commit for the previous utterance goes out first
            await asyncio.wait({self._commit_task})
            if not self.accepting_events or self._state not in INBOUND_AUDIO_STATES:
                return

        signal = self._segmenter.on_frame(frame.received_at)
        if signal is not None:
            await self._commit_utterance()
            if self._state not in INBOUND_AUDIO_STATES:
                return

        await self._send_realtime(encode_audio_append(frame.payload, self.settings.audio_format))
        self._arm_quiet_timer()

    async def _on_carrier_stop(self, event: CarrierStop) -> None:
        logger.info(f"Call {self.call_id}: carrier stop received")
        if self._state is CallState.IDLE:
            await self.close("carrier_stop")
        else:
            await self.drain("carrier_stop")

    async def _on_carrier_mark(self, event: CarrierMark) -> None:
        logger.debug(f"Call {self.call_id}: mark received: {event.name}")

    async def _send_carrier(self, message: str) -> bool:
        async with self._carrier_lock:
            try:
                await self._carrier.send_text(message)
                return True
            except Exception as e:
                logger.warning(f"Call {self.call_id}: failed to send to carrier: {type(e).__name__}")
                return False

    async def forward_to_carrier(self, payload: bytes) -> bool:
        """Send assistant audio to the caller if the state allows it."""
        if self._state not in OUTBOUND_AUDIO_STATES or not self.stream_id or not payload:
            return False
        sent = await self._send_carrier(encode_carrier_media(payload, self.stream_id))
        if sent:
            self._frames_out += 1
        return sent

    # Utterance segmentation

    def _arm_quiet_timer(self) -> None:
        self._cancel_quiet_timer()
        loop = asyncio.get_running_loop()
        self._quiet_timer = loop.call_later(self._segmenter.quiet_threshold, self._on_quiet_timeout)

    def _cancel_quiet_timer(self) -> None:
        if self._quiet_timer is not None:
            self._quiet_timer.cancel()
            self._quiet_timer = None

    def _on_quiet_timeout(self) -> None:
        self._quiet_timer = None
        if not self.accepting_events or self._state not in INBOUND_AUDIO_STATES:
            return
        if self._segmenter.on_quiet_timeout() is not None:
            self._commit_task = self._spawn(self._commit_utterance())

    async def _commit_utterance(self) -> None:
        """Tell the model the buffered audio is a complete utterance."""
        if self._state not in INBOUND_AUDIO_STATES:
            return
        logger.debug(f"Call {self.call_id}: committing utterance")
        if self._assistant_speaking and self.stream_id:
            # Caller talked over the assistant; drop queued playback
            await self._send_carrier(encode_carrier_clear(self.stream_id))
            self._assistant_speaking = False
        if await self._send_realtime(encode_audio_commit()):
            await self._send_realtime(encode_response_create())

    # Realtime side

    async def _send_realtime(self, message: str) -> bool:
        if self._realtime is None:
            return False
        return await self._realtime.send_event(message)

    async def _listen_realtime(self) -> None:
        try:
            async for raw in self._realtime.messages():
                await self.handle_realtime_message(raw)
                if not self.accepting_events:
                    return
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Call {self.call_id}: error reading from AI channel: {e}", exc_info=True)
        if self.accepting_events:
            logger.warning(f"Call {self.call_id}: {ChannelDisconnect('ai')}")
            await self.drain("ai_channel_closed")

    async def handle_realtime_message(self, raw) -> None:
        """Decode and process one frame from the AI channel."""
        if not self.accepting_events:
            return
        try:
            event = decode_realtime_message(raw)
        except ProtocolDecodeError as e:
            logger.warning(f"Call {self.call_id}: dropping realtime frame: {e}")
            return
        await self.handle_realtime_event(event)

    async def handle_realtime_event(self, event) -> None:
        if not self.accepting_events:
            return
        handler = self._realtime_handlers.get(type(event))
        if handler is None:
            logger.warning(f"Call {self.call_id}: no handler for realtime event {type(event).__name__}")
            return
        await handler(event)

    async def _on_session_ready(self, event: RealtimeSessionReady) -> None:
        logger.info(f"Call {self.call_id}: AI session ready (session_id={event.session_id})")
        if self._state is CallState.NEGOTIATING:
            self._transition(CallState.ACTIVE, "session acknowledged")

    async def _on_audio_delta(self, event: RealtimeAudioDelta) -> None:
        if await self.forward_to_carrier(event.payload):
            self._assistant_speaking = True

    async def _on_response_completed(self, event: RealtimeResponseCompleted) -> None:
        self._assistant_speaking = False
        self._responses_completed += 1
        logger.debug(f"Call {self.call_id}: response {self._responses_completed} completed")
        if self._state in OUTBOUND_AUDIO_STATES and self.stream_id:
            await self._send_carrier(encode_carrier_mark(f"response-{self._responses_completed}", self.stream_id))

    async def _on_tool_call(self, event: RealtimeToolCall) -> None:
        if event.call_id in self.pending_tools:
            logger.warning(f"Call {self.call_id}: duplicate tool call {event.call_id} ignored")
            return
        invocation = ToolInvocation.from_request(event.call_id, event.name, event.arguments)
        self.pending_tools[invocation.call_id] = invocation
        logger.info(f"Call {self.call_id}: tool call {invocation.name} (call_id={invocation.call_id})")
        task = asyncio.create_task(self._run_tool(invocation))
        self._tool_tasks.add(task)
        task.add_done_callback(self._tool_tasks.discard)

    async def _run_tool(self, invocation: ToolInvocation) -> None:
        try:
            result = await self.dispatcher.dispatch(invocation)
        except asyncio.CancelledError:
            if invocation.is_pending:
                invocation.fail({"error": "cancelled"})
            self.pending_tools.pop(invocation.call_id, None)
            raise

        if self._state is CallState.CLOSED:
            logger.warning(f"Call {self.call_id}: dropping tool result for {invocation.call_id}, call closed")
        elif not await self._send_realtime(encode_function_call_result(invocation.call_id, result)):
            logger.warning(f"Call {self.call_id}: could not deliver tool result for {invocation.call_id}")
        self.pending_tools.pop(invocation.call_id, None)

    async def wait_for_tool_calls(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for outstanding tool calls to deliver their results.

        Returns:
            bool: True if none are left outstanding
        """
        tasks = list(self._tool_tasks)
        if not tasks:
            return True
        _, pending = await asyncio.wait(tasks, timeout=timeout)
        return not pending

    async def _on_transcript(self, event: RealtimeTranscript) -> None:
        text = event.text.strip()
        if not text:
            return
        self.transcript.append(TranscriptEntry(role=event.role, text=text))
        logger.debug(f"Call {self.call_id}: {event.role.value} transcript entry #{len(self.transcript)}")

    async def _on_realtime_error(self, event: RealtimeError) -> None:
        logger.error(f"Call {self.call_id}: realtime API error {event.code}: {event.message}")

    async def _on_realtime_unhandled(self, event: RealtimeUnhandled) -> None:
        logger.debug(f"Call {self.call_id}: ignoring realtime event {event.type}")

    # Liveness

    async def _keepalive(self) -> None:
        interval = self.settings.keepalive_interval_seconds
        while self.accepting_events:
            await asyncio.sleep(interval)
            if not self.accepting_events:
                return
            if self._carrier.client_state != WebSocketState.CONNECTED:
                logger.warning(f"Call {self.call_id}: carrier socket no longer connected")
                await self.drain("carrier_disconnected")
                return
            if self._realtime is None or not await self._realtime.ping():
                logger.warning(f"Call {self.call_id}: AI channel keep-alive failed")
                await self.drain("ai_keepalive_failed")
                return

    async def _watch_idle(self) -> None:
        timeout = self.settings.idle_timeout_seconds
        while self.accepting_events and self._state in INBOUND_AUDIO_STATES:
            remaining = self.last_inbound_audio_at + timeout - self._clock()
            if remaining <= 0:
                logger.warning(f"Call {self.call_id}: no inbound audio for {timeout}s")
                await self.close("idle_timeout")
                return
            await asyncio.sleep(remaining)

    # Shutdown

    async def drain(self, reason: str) -> None:
        """
        Stop taking inbound audio, flush what is in flight, then close.

        Repeated calls (duplicate stop events, both sockets dropping) are no-ops.
        """
        if self._closing or self._state not in INBOUND_AUDIO_STATES:
            return
        self._transition(CallState.DRAINING, reason)
        self._cancel_quiet_timer()
        self._segmenter.reset()

        # Let an in-flight carrier send finish
        async with self._carrier_lock:
            pass

        if self._tool_tasks and not await self.wait_for_tool_calls(self.settings.close_grace_seconds):
            logger.warning(f"Call {self.call_id}: tool calls still outstanding after grace period")

        await self.close(reason)

    async def close(self, reason: str) -> None:
        """
        Close both channels, run cleanup and enter Closed.

        Safe to call from any state and from any of the session's own tasks.
        """
        if self._closing or self._state is CallState.CLOSED:
            return
        self._closing = True
        logger.info(f"Call {self.call_id}: closing ({reason})")

        self._cancel_quiet_timer()
        await self._cancel_tasks()
        await self._close_channels()
        self._cleanup()
        self._transition(CallState.CLOSED, reason)

    async def _cancel_tasks(self) -> None:
        current = asyncio.current_task()
        tasks = [
            task
            for task in [self._listener_task, self._keepalive_task, self._idle_task,
                         *self._tool_tasks, *self._background_tasks]
            if task is not None and task is not current and not task.done()
        ]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _close_channels(self) -> None:
        grace = self.settings.close_grace_seconds
        if self._realtime is not None:
            try:
                await asyncio.wait_for(self._realtime.close(), timeout=grace)
            except asyncio.TimeoutError:
                logger.warning(f"Call {self.call_id}: AI channel did not close within {grace}s, forcing")
                self.forced_closes.add("ai")
                self._realtime.abort()
            except Exception as e:
                logger.warning(f"Call {self.call_id}: error closing AI channel: {e}")

        if self._carrier.client_state == WebSocketState.DISCONNECTED:
            return
        try:
            await asyncio.wait_for(self._carrier.close(), timeout=grace)
        except asyncio.TimeoutError:
            # Returning from the ASGI handler makes the server drop the transport
            logger.warning(f"Call {self.call_id}: carrier socket did not close within {grace}s, forcing")
            self.forced_closes.add("carrier")
        except Exception as e:
            logger.debug(f"Call {self.call_id}: carrier socket already closed: {type(e).__name__}")

    def _cleanup(self) -> None:
        for invocation in self.pending_tools.values():
            if invocation.is_pending:
                invocation.fail({"error": "call_closed"})
        self.pending_tools.clear()
        self._segmenter.reset()

        duration = time.time() - self.started_at
        logger.info(
            f"Call {self.call_id}: cleanup completed (duration={duration:.1f}s, "
            f"frames_in={self._frames_in}, frames_out={self._frames_out}, "
            f"transcript_entries={len(self.transcript)}, commits={self._segmenter.commits})"
        )
        if self._registry is not None:
            self._registry.unregister(self.call_id)

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)
        return task
