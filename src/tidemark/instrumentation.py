"""Optional OpenTelemetry instrumentation for tidemark.

Call ``tidemark.instrumentation.instrument()`` once at startup to enable
tracing.  Requires ``opentelemetry-api`` to be installed; the library
works identically without it.
"""

import importlib.util
import logging
from contextlib import asynccontextmanager

from tidemark.streaming import StreamState

logger = logging.getLogger(__name__)

_tracer = None


def instrument(*, tracer_name: str = "tidemark") -> None:
    """Enable OpenTelemetry tracing for stream exchanges.

    Call once at startup, after configuring your TracerProvider.
    Requires ``opentelemetry-api``: ``pip install tidemark[otel]``

    Example::

        from opentelemetry import trace
        from opentelemetry.sdk.trace import TracerProvider

        trace.set_tracer_provider(TracerProvider())

        from tidemark.instrumentation import instrument
        instrument()

    Args:
        tracer_name: Name passed to ``trace.get_tracer()``.

    Raises:
        ImportError: If ``opentelemetry-api`` is not installed.
    """
    global _tracer
    if importlib.util.find_spec("opentelemetry.trace") is None:
        raise ImportError(
            "opentelemetry-api is required for instrumentation. "
            "Install it with: pip install tidemark[otel]"
        )
    from opentelemetry import trace
    _tracer = trace.get_tracer(tracer_name)
    if isinstance(_tracer, trace.NoOpTracer):
        logger.info(
            "No TracerProvider configured; spans will be "
            "discarded. Set up a TracerProvider to export "
            "traces."
        )
    else:
        logger.info("Tidemark instrumentation enabled")


def uninstrument() -> None:
    """Disable OpenTelemetry tracing."""
    global _tracer
    _tracer = None


@asynccontextmanager
async def exchange_span(conversation_id: int | None = None):
    """Wrap one streamed exchange in a ``stream_exchange`` span.

    The span is started without being made current, because the body
    it wraps is an async generator that suspends between chunks.
    """
    if _tracer is None:
        yield None
        return
    attributes = {"tidemark.operation.name": "stream_exchange"}
    if conversation_id is not None:
        attributes["tidemark.conversation.id"] = conversation_id
    span = _tracer.start_span("stream_exchange", attributes=attributes)
    try:
        yield span
    except Exception as e:
        record_error(span, e)
        raise
    finally:
        span.end()


def record_stream_stats(span, state: StreamState) -> None:
    """Set chunk, size and service attributes on a span."""
    if span is None:
        return
    span.set_attribute("tidemark.stream.chunks", state.chunk_count)
    span.set_attribute(
        "tidemark.stream.chars", len(state.accumulated_text)
    )
    span.set_attribute("tidemark.stream.service", state.detected_service)
    span.set_attribute("tidemark.stream.completed", state.completed)


def record_error(span, exception: BaseException) -> None:
    """Record an exception and set ERROR status on a span.

    No-ops when *span* is ``None`` (tracing disabled).
    """
    if span is None:
        return
    from opentelemetry.trace import StatusCode

    span.set_status(StatusCode.ERROR, str(exception))
    span.record_exception(exception)
    span.set_attribute(
        "error.type", type(exception).__qualname__
    )
