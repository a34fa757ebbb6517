"""Unit tests for streaming events and the event relay."""

import asyncio
import threading
from enum import Enum
from types import SimpleNamespace
from unittest.mock import Mock

import pytest

from kubeassist.events import EventKind, EventRelay, Listener, StreamEvent, sdk_event_type


class SessionEventType(Enum):
    ASSISTANT_MESSAGE_DELTA = "assistant.message_delta"
    TOOL_EXECUTION_START = "tool.execution_start"
    SESSION_IDLE = "session.idle"


def sdk_event(event_type, **data):
    return SimpleNamespace(type=event_type, data=SimpleNamespace(**data))


class RecordingListener:
    """Listener recording every callback in order."""

    def __init__(self):
        self.calls = []

    def response_start(self):
        self.calls.append(("response_start",))

    def response_delta(self, text):
        self.calls.append(("response_delta", text))

    def response_complete(self, text):
        self.calls.append(("response_complete", text))

    def response_failed(self, error):
        self.calls.append(("response_failed", error))

    def reasoning_delta(self, text):
        self.calls.append(("reasoning_delta", text))

    def reasoning_complete(self, text):
        self.calls.append(("reasoning_complete", text))

    def tool_start(self, tool_name):
        self.calls.append(("tool_start", tool_name))

    def tool_complete(self, tool_name):
        self.calls.append(("tool_complete", tool_name))


class TestStreamEvent:
    """Test mapping of runtime events."""

    def test_listener_protocol(self):
        assert isinstance(RecordingListener(), Listener)

    def test_event_type_from_enum_or_string(self):
        assert sdk_event_type(sdk_event(SessionEventType.SESSION_IDLE)) == "session.idle"
        assert sdk_event_type(sdk_event("assistant.reasoning")) == "assistant.reasoning"
        assert sdk_event_type(SimpleNamespace()) == ""

    def test_message_delta(self):
        event = StreamEvent.from_sdk(sdk_event(SessionEventType.ASSISTANT_MESSAGE_DELTA, delta_content="Hel"))
        assert event == StreamEvent(kind=EventKind.RESPONSE_DELTA, text="Hel")

    def test_streaming_delta_alias(self):
        event = StreamEvent.from_sdk(sdk_event("assistant.streaming_delta", delta_content="lo"))
        assert event.kind is EventKind.RESPONSE_DELTA

    def test_reasoning(self):
        delta = StreamEvent.from_sdk(sdk_event("assistant.reasoning_delta", delta_content="hmm"))
        done = StreamEvent.from_sdk(sdk_event("assistant.reasoning", content="hmm."))
        assert delta.kind is EventKind.REASONING_DELTA
        assert done == StreamEvent(kind=EventKind.REASONING_COMPLETE, text="hmm.")

    def test_tool_events(self):
        start = StreamEvent.from_sdk(sdk_event(SessionEventType.TOOL_EXECUTION_START, tool_name="get_logs"))
        done = StreamEvent.from_sdk(sdk_event("tool.execution_complete", tool_name="get_logs"))
        assert start == StreamEvent(kind=EventKind.TOOL_START, tool_name="get_logs")
        assert done.kind is EventKind.TOOL_COMPLETE

    def test_ignored_events(self):
        assert StreamEvent.from_sdk(sdk_event(SessionEventType.SESSION_IDLE)) is None
        assert StreamEvent.from_sdk(sdk_event("assistant.message_delta")) is None

    def test_dispatch(self):
        listener = Mock()
        StreamEvent(kind=EventKind.TOOL_START, tool_name="check_rbac").dispatch(listener)
        StreamEvent(kind=EventKind.RESPONSE_DELTA, text="done").dispatch(listener)
        listener.tool_start.assert_called_once_with("check_rbac")
        listener.response_delta.assert_called_once_with("done")


class TestEventRelay:
    """Test ordered, bounded delivery."""

    @pytest.mark.asyncio
    async def test_delivers_in_order(self):
        listener = RecordingListener()
        relay = EventRelay(listener).start()

        for chunk in ("a", "b", "c"):
            relay.push(StreamEvent(kind=EventKind.RESPONSE_DELTA, text=chunk))
        await relay.close()

        assert listener.calls == [("response_delta", "a"), ("response_delta", "b"), ("response_delta", "c")]
        assert relay.dropped == 0

    @pytest.mark.asyncio
    async def test_push_from_other_thread(self):
        listener = RecordingListener()
        relay = EventRelay(listener).start()

        def produce():
            for i in range(20):
                relay.push(StreamEvent(kind=EventKind.RESPONSE_DELTA, text=str(i)))

        thread = threading.Thread(target=produce)
        thread.start()
        await asyncio.to_thread(thread.join)
        await relay.close()

        assert [call[1] for call in listener.calls] == [str(i) for i in range(20)]

    @pytest.mark.asyncio
    async def test_overflow_drops_and_counts(self):
        listener = RecordingListener()
        relay = EventRelay(listener, maxsize=2).start()

        # Enqueue synchronously so the consumer has no chance to run in between.
        for i in range(5):
            relay._enqueue(StreamEvent(kind=EventKind.RESPONSE_DELTA, text=str(i)))
        await relay.close()

        assert relay.dropped == 3
        assert listener.calls == [("response_delta", "0"), ("response_delta", "1")]

    @pytest.mark.asyncio
    async def test_listener_error_does_not_stop_relay(self):
        listener = Mock()
        listener.tool_start.side_effect = RuntimeError("boom")
        relay = EventRelay(listener).start()

        relay.push(StreamEvent(kind=EventKind.TOOL_START, tool_name="get_logs"))
        relay.push(StreamEvent(kind=EventKind.TOOL_COMPLETE, tool_name="get_logs"))
        await relay.close()

        listener.tool_complete.assert_called_once_with("get_logs")

    @pytest.mark.asyncio
    async def test_events_after_close_are_ignored(self):
        listener = RecordingListener()
        relay = EventRelay(listener).start()
        await relay.close()

        relay.push(StreamEvent(kind=EventKind.RESPONSE_DELTA, text="late"))
        await asyncio.sleep(0)

        assert listener.calls == []
