"""Unit tests for the instrumentation module.

Tests use unittest.mock for OTel interactions.  ``opentelemetry-api``
is a test dependency so we can import ``StatusCode`` directly for
assertion accuracy.
"""

from unittest.mock import MagicMock, patch

import pytest
from opentelemetry.trace import StatusCode

import tidemark.instrumentation as inst
from tidemark.instrumentation import (
    exchange_span,
    record_error,
    record_stream_stats,
    uninstrument,
)
from tidemark.streaming import StreamState


@pytest.fixture(autouse=True)
def _reset_tracer():
    """Ensure _tracer is reset to None before and after each test."""
    inst._tracer = None
    yield
    inst._tracer = None


class TestInstrument:
    def test_requires_opentelemetry(self):
        with patch("importlib.util.find_spec", return_value=None):
            with pytest.raises(ImportError, match=r"tidemark\[otel\]"):
                inst.instrument()

    def test_exchange_spans_use_named_tracer(self):
        with patch("opentelemetry.trace.get_tracer") as get_tracer:
            inst.instrument(tracer_name="chat-ui")

        get_tracer.assert_called_once_with("chat-ui")
        assert inst._tracer is get_tracer.return_value

    @pytest.mark.asyncio
    async def test_uninstrument_stops_spans(self):
        inst._tracer = MagicMock()
        uninstrument()

        async with exchange_span(3) as s:
            assert s is None


# -------------------------------------------------------------------
# exchange_span
# -------------------------------------------------------------------


class TestExchangeSpan:
    @pytest.mark.asyncio
    async def test_yields_none_without_tracer(self):
        async with exchange_span(7) as s:
            assert s is None

    @pytest.mark.asyncio
    async def test_starts_and_ends_span(self):
        mock_tracer = MagicMock()
        inst._tracer = mock_tracer

        async with exchange_span(7) as s:
            assert s is mock_tracer.start_span.return_value

        mock_tracer.start_span.assert_called_once_with(
            "stream_exchange",
            attributes={
                "tidemark.operation.name": "stream_exchange",
                "tidemark.conversation.id": 7,
            },
        )
        s.end.assert_called_once()

    @pytest.mark.asyncio
    async def test_conversation_attribute_omitted_without_id(self):
        mock_tracer = MagicMock()
        inst._tracer = mock_tracer

        async with exchange_span():
            pass

        _, kwargs = mock_tracer.start_span.call_args
        assert "tidemark.conversation.id" not in kwargs["attributes"]

    @pytest.mark.asyncio
    async def test_error_recorded_and_span_ended(self):
        mock_tracer = MagicMock()
        inst._tracer = mock_tracer
        span = mock_tracer.start_span.return_value

        with pytest.raises(RuntimeError):
            async with exchange_span(1):
                raise RuntimeError("boom")

        span.set_status.assert_called_once_with(StatusCode.ERROR, "boom")
        span.end.assert_called_once()


# -------------------------------------------------------------------
# record_stream_stats
# -------------------------------------------------------------------


class TestRecordStreamStats:
    def test_noop_on_none_span(self):
        record_stream_stats(None, StreamState())

    def test_sets_stream_attributes(self):
        span = MagicMock()
        state = StreamState(
            accumulated_text="hello",
            detected_service="groq",
            completed=True,
            chunk_count=3,
        )
        record_stream_stats(span, state)

        span.set_attribute.assert_any_call("tidemark.stream.chunks", 3)
        span.set_attribute.assert_any_call("tidemark.stream.chars", 5)
        span.set_attribute.assert_any_call("tidemark.stream.service", "groq")
        span.set_attribute.assert_any_call("tidemark.stream.completed", True)


# -------------------------------------------------------------------
# record_error
# -------------------------------------------------------------------


class TestRecordError:
    def test_sets_status_and_records_exception(self):
        span = MagicMock()
        exc = RuntimeError("boom")
        record_error(span, exc)

        span.set_status.assert_called_once_with(
            StatusCode.ERROR, "boom"
        )
        span.record_exception.assert_called_once_with(exc)
        span.set_attribute.assert_called_once_with(
            "error.type", "RuntimeError"
        )

    def test_noop_on_none_span(self):
        record_error(None, RuntimeError("boom"))
