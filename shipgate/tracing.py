"""
Pipeline Tracing
================
OpenTelemetry spans for pipeline runs.

A run gets one `pipeline.run` span and each stage a `stage.<name>` child span.
Spans are exported over OTLP/HTTP when SHIPGATE_ENABLE_TRACING=true; otherwise
the global no-op tracer is used and span helpers cost almost nothing.
"""

import atexit
import json
from contextlib import contextmanager
from typing import Any, Iterator, Mapping, Optional, Sequence

from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource, SERVICE_NAME
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from loguru import logger

from shipgate.config import TRACING

# Span attribute limits
MAX_ATTRIBUTE_CHARS = 2048
MAX_SEQUENCE_ITEMS = 25
MAX_SEQUENCE_ITEM_CHARS = 256

_provider: Optional[TracerProvider] = None
_tracer: Optional[trace.Tracer] = None


def _shutdown_provider() -> None:
    if _provider is None:
        return
    try:
        _provider.shutdown()
    except Exception as e:
        logger.debug("Tracer provider shutdown failed: {}: {}", type(e).__name__, e)


def _export_tracer() -> trace.Tracer:
    """Install an OTLP-exporting provider and instrument httpx (DAST target probes)."""

    global _provider

    _provider = TracerProvider(resource=Resource.create({SERVICE_NAME: TRACING.SERVICE_NAME}))
    _provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=TRACING.OTLP_ENDPOINT)))
    trace.set_tracer_provider(_provider)
    HTTPXClientInstrumentor().instrument()
    atexit.register(_shutdown_provider)

    logger.info("Exporting pipeline traces to {}", TRACING.OTLP_ENDPOINT)
    return trace.get_tracer(TRACING.SERVICE_NAME)


def init_tracing() -> trace.Tracer:
    """Return the pipeline tracer, installing the exporter on first use when enabled."""

    global _tracer
    if _tracer is None:
        _tracer = _export_tracer() if TRACING.ENABLED else trace.get_tracer(TRACING.SERVICE_NAME)
    return _tracer


def _attribute_value(value: Any) -> Any:
    """Coerce a value into something a span attribute accepts, or None to drop it."""

    if value is None:
        return None
    if isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, str):
        return value[:MAX_ATTRIBUTE_CHARS]
    if isinstance(value, (list, tuple)):
        items = list(value)[:MAX_SEQUENCE_ITEMS]
        if all(isinstance(x, (bool, int, float)) for x in items):
            return items
        return [str(x)[:MAX_SEQUENCE_ITEM_CHARS] for x in items]
    if isinstance(value, dict):
        try:
            return json.dumps(value, sort_keys=True)[:MAX_ATTRIBUTE_CHARS]
        except (TypeError, ValueError):
            return str(value)[:MAX_ATTRIBUTE_CHARS]
    return str(value)[:MAX_ATTRIBUTE_CHARS]


def safe_set_span_attributes(span: Any, attributes: Mapping[str, Any]) -> None:
    """Set attributes on span, skipping anything that cannot be recorded.

    Works with no-op spans and never raises into the pipeline.
    """

    setter = getattr(span, "set_attribute", None)
    if not callable(setter):
        return

    for key, value in attributes.items():
        if not isinstance(key, str) or not key:
            continue
        coerced = _attribute_value(value)
        if coerced is None:
            continue
        try:
            setter(key, coerced)
        except Exception as e:
            logger.debug("Dropped span attribute {}: {}: {}", key, type(e).__name__, e)


def safe_set_current_span_attributes(attributes: Mapping[str, Any]) -> None:
    safe_set_span_attributes(trace.get_current_span(), attributes)


@contextmanager
def run_span(run_id: str, stage_names: Sequence[str]) -> Iterator[Any]:
    """Span covering one whole pipeline run."""

    with init_tracing().start_as_current_span("pipeline.run") as span:
        safe_set_span_attributes(span, {"pipeline.run_id": run_id, "pipeline.stages": list(stage_names)})
        yield span


@contextmanager
def stage_span(name: str, kind: str) -> Iterator[Any]:
    """Child span for one stage; the runner adds status attributes when it finishes."""

    with init_tracing().start_as_current_span(f"stage.{name}") as span:
        safe_set_span_attributes(span, {"stage.name": name, "stage.kind": kind})
        yield span
