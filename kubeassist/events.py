"""Streaming events of a prompt turn and their delivery to a listener.

The agent runtime reports live activity (text deltas, reasoning, tool calls)
on a callback that may fire from any thread. ``EventRelay`` turns those
callbacks into messages on a bounded asyncio queue consumed by a single
task, so the listener sees events one at a time, in emission order, on the
event loop thread.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Protocol, runtime_checkable

import structlog

logger = structlog.get_logger(__name__)


@runtime_checkable
class Listener(Protocol):
    """Receives the events of one prompt turn."""

    def response_start(self) -> None:
        """Called once when a turn begins."""

    def response_delta(self, text: str) -> None:
        """Called for each streamed text chunk. Informational only."""

    def response_complete(self, text: str) -> None:
        """Called once with the authoritative final text."""

    def response_failed(self, error: Exception) -> None:
        """Called once when the turn fails."""

    def reasoning_delta(self, text: str) -> None:
        """Called for each reasoning chunk (models that support it)."""

    def reasoning_complete(self, text: str) -> None:
        """Called when a reasoning block is done."""

    def tool_start(self, tool_name: str) -> None:
        """Called when the agent starts a tool call."""

    def tool_complete(self, tool_name: str) -> None:
        """Called when a tool call finishes."""


class EventKind(Enum):
    """Kinds of streaming events."""

    RESPONSE_DELTA = "response_delta"
    REASONING_DELTA = "reasoning_delta"
    REASONING_COMPLETE = "reasoning_complete"
    TOOL_START = "tool_start"
    TOOL_COMPLETE = "tool_complete"


# Runtime event type -> (kind, payload attribute on event.data)
_SDK_EVENT_MAP = {
    "assistant.message_delta": (EventKind.RESPONSE_DELTA, "delta_content"),
    "assistant.streaming_delta": (EventKind.RESPONSE_DELTA, "delta_content"),
    "assistant.reasoning_delta": (EventKind.REASONING_DELTA, "delta_content"),
    "assistant.reasoning": (EventKind.REASONING_COMPLETE, "content"),
    "tool.execution_start": (EventKind.TOOL_START, "tool_name"),
    "tool.execution_complete": (EventKind.TOOL_COMPLETE, "tool_name"),
}


def sdk_event_type(event: Any) -> str:
    """Return the runtime event type as a plain string."""
    event_type = getattr(event, "type", None)
    return str(getattr(event_type, "value", event_type) or "")


@dataclass(frozen=True)
class StreamEvent:
    """One event of a turn. Exists only for the duration of the turn."""

    kind: EventKind
    text: str = ""
    tool_name: str = ""

    @classmethod
    def from_sdk(cls, event: Any) -> Optional["StreamEvent"]:
        """Map a runtime session event; None for events the listener ignores."""
        mapping = _SDK_EVENT_MAP.get(sdk_event_type(event))
        if mapping is None:
            return None
        kind, attribute = mapping
        value = getattr(getattr(event, "data", None), attribute, None)
        if value is None:
            return None
        if kind in (EventKind.TOOL_START, EventKind.TOOL_COMPLETE):
            return cls(kind=kind, tool_name=str(value))
        return cls(kind=kind, text=str(value))

    def dispatch(self, listener: Listener) -> None:
        """Invoke the listener callback matching this event."""
        if self.kind is EventKind.RESPONSE_DELTA:
            listener.response_delta(self.text)
        elif self.kind is EventKind.REASONING_DELTA:
            listener.reasoning_delta(self.text)
        elif self.kind is EventKind.REASONING_COMPLETE:
            listener.reasoning_complete(self.text)
        elif self.kind is EventKind.TOOL_START:
            listener.tool_start(self.tool_name)
        elif self.kind is EventKind.TOOL_COMPLETE:
            listener.tool_complete(self.tool_name)


_CLOSE = object()


class EventRelay:
    """Bounded, ordered delivery of live events to a listener.

    ``push`` is safe to call from any thread. When the queue is full the
    event is dropped and counted: live events are cosmetic and the final
    text of a turn never travels through the relay.
    """

    def __init__(self, listener: Listener, maxsize: int = 256):
        self._listener = listener
        self._loop = asyncio.get_running_loop()
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._task: Optional[asyncio.Task] = None
        self._closed = False
        self.dropped = 0

    def start(self) -> "EventRelay":
        self._task = self._loop.create_task(self._run())
        return self

    def push(self, event: StreamEvent) -> None:
        """Queue an event for delivery."""
        if self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(self._enqueue, event)

    def _enqueue(self, event: StreamEvent) -> None:
        if self._closed:
            return
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.debug("event_dropped", kind=event.kind.value, dropped=self.dropped)

    async def _run(self) -> None:
        while True:
            event = await self._queue.get()
            if event is _CLOSE:
                return
            try:
                event.dispatch(self._listener)
            except Exception as e:
                # A broken listener must not stall the turn.
                logger.error("listener_error", kind=event.kind.value, error=str(e))

    async def close(self) -> None:
        """Deliver everything already pushed, then stop the consumer."""
        if self._task is None or self._closed:
            return
        # Let callbacks already scheduled by push() run first.
        await asyncio.sleep(0)
        self._closed = True
        await self._queue.put(_CLOSE)
        await self._task
