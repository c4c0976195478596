"""OpenTelemetry + Prometheus fallback wiring for the monitor."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any

from fastapi import FastAPI

from claude_monitor import config

logger = logging.getLogger("claude_monitor.observability")


_initialized = False
_enabled = False
_tracer: Any | None = None
_trace_provider: Any | None = None
_meter_provider: Any | None = None
_fastapi_instrumentor: Any | None = None

_events_counter: Any | None = None
_rejected_counter: Any | None = None
_sweep_counter: Any | None = None

_prom_enabled = False
_prom_events_counter: Any | None = None
_prom_rejected_counter: Any | None = None
_prom_sweep_counter: Any | None = None


def _normalize_otlp_endpoint(base_endpoint: str, signal_path: str) -> str:
    endpoint = (base_endpoint or "").strip()
    if not endpoint:
        return ""
    if endpoint.endswith(signal_path):
        return endpoint
    if endpoint.endswith("/"):
        endpoint = endpoint[:-1]
    if endpoint.endswith("/v1"):
        return f"{endpoint}{signal_path[3:]}"
    return f"{endpoint}{signal_path}"


def _label(value: str | None) -> str:
    return (value or "").strip() or "unknown"


def initialize(app: FastAPI | None = None) -> None:
    global _initialized, _enabled, _tracer, _trace_provider, _meter_provider, _fastapi_instrumentor
    global _events_counter, _rejected_counter, _sweep_counter
    global _prom_enabled, _prom_events_counter, _prom_rejected_counter, _prom_sweep_counter

    if _initialized:
        if _enabled and app and _fastapi_instrumentor:
            _fastapi_instrumentor.instrument_app(app)
        return

    _initialized = True

    if not config.OTEL_ENABLED:
        logger.info("OpenTelemetry disabled (CLAUDE_MONITOR_OTEL_ENABLED=false)")
        return

    try:
        from opentelemetry import metrics, trace
        from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter
        from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
        from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
        from opentelemetry.sdk.metrics import MeterProvider
        from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor
    except ImportError as exc:
        logger.warning("OpenTelemetry dependencies unavailable: %s", exc)
        return

    traces_endpoint = _normalize_otlp_endpoint(config.OTEL_ENDPOINT, "/v1/traces")
    metrics_endpoint = _normalize_otlp_endpoint(config.OTEL_ENDPOINT, "/v1/metrics")
    service_name = config.OTEL_SERVICE_NAME or "claude-monitor"

    resource = Resource.create(
        {
            "service.name": service_name,
            "service.namespace": "claude-monitor",
        }
    )

    trace_provider = TracerProvider(resource=resource)
    trace_provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=traces_endpoint or None)))
    trace.set_tracer_provider(trace_provider)
    tracer = trace.get_tracer("claude_monitor")

    metric_reader = PeriodicExportingMetricReader(
        OTLPMetricExporter(endpoint=metrics_endpoint or None)
    )
    meter_provider = MeterProvider(resource=resource, metric_readers=[metric_reader])
    metrics.set_meter_provider(meter_provider)
    meter = metrics.get_meter("claude_monitor")

    _events_counter = meter.create_counter(
        "claude_monitor_events_total",
        unit="1",
        description="Lifecycle events ingested, by kind and transport",
    )
    _rejected_counter = meter.create_counter(
        "claude_monitor_events_rejected_total",
        unit="1",
        description="Lifecycle events dropped at the boundary, by reason",
    )
    _sweep_counter = meter.create_counter(
        "claude_monitor_sweep_transitions_total",
        unit="1",
        description="Staleness sweeper demotions and removals",
    )

    _trace_provider = trace_provider
    _meter_provider = meter_provider
    _tracer = tracer
    _fastapi_instrumentor = FastAPIInstrumentor()
    _enabled = True

    if app:
        _fastapi_instrumentor.instrument_app(app)

    if config.PROM_PORT > 0:
        try:
            from prometheus_client import Counter, start_http_server

            start_http_server(config.PROM_PORT)
            _prom_enabled = True
            _prom_events_counter = Counter(
                "claude_monitor_events_total",
                "Lifecycle events ingested, by kind and transport",
                ["kind", "source"],
            )
            _prom_rejected_counter = Counter(
                "claude_monitor_events_rejected_total",
                "Lifecycle events dropped at the boundary, by reason",
                ["reason", "source"],
            )
            _prom_sweep_counter = Counter(
                "claude_monitor_sweep_transitions_total",
                "Staleness sweeper demotions and removals",
                ["transition"],
            )
            logger.info("Prometheus fallback metrics server listening on port %s", config.PROM_PORT)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Prometheus fallback not started: %s", exc)
            _prom_enabled = False

    logger.info(
        "OpenTelemetry initialized (service=%s endpoint=%s)",
        service_name,
        config.OTEL_ENDPOINT,
    )


def shutdown(app: FastAPI | None = None) -> None:
    global _enabled
    if not _initialized:
        return
    try:
        if app and _fastapi_instrumentor:
            _fastapi_instrumentor.uninstrument_app(app)
    except Exception:
        pass
    try:
        if _meter_provider is not None:
            _meter_provider.shutdown()
    except Exception:
        pass
    try:
        if _trace_provider is not None:
            _trace_provider.shutdown()
    except Exception:
        pass
    _enabled = False


@contextmanager
def start_span(name: str, attributes: dict[str, Any] | None = None):
    if not _enabled or _tracer is None:
        yield None
        return
    with _tracer.start_as_current_span(name) as span:
        if attributes:
            for key, value in attributes.items():
                if value is not None:
                    span.set_attribute(key, value)
        yield span


def record_event(kind: str, *, source: str) -> None:
    labels = {"kind": _label(kind), "source": _label(source)}
    if _enabled and _events_counter is not None:
        _events_counter.add(1, labels)
    if _prom_enabled and _prom_events_counter is not None:
        _prom_events_counter.labels(**labels).inc()


def record_rejected(reason: str, *, source: str) -> None:
    labels = {"reason": _label(reason), "source": _label(source)}
    if _enabled and _rejected_counter is not None:
        _rejected_counter.add(1, labels)
    if _prom_enabled and _prom_rejected_counter is not None:
        _prom_rejected_counter.labels(**labels).inc()


def record_sweep(*, idled_sessions: int = 0, completed_agents: int = 0, removed_agents: int = 0) -> None:
    for transition, count in (
        ("session_idle", idled_sessions),
        ("agent_completed", completed_agents),
        ("agent_removed", removed_agents),
    ):
        safe_count = max(0, int(count))
        if safe_count == 0:
            continue
        if _enabled and _sweep_counter is not None:
            _sweep_counter.add(safe_count, {"transition": transition})
        if _prom_enabled and _prom_sweep_counter is not None:
            _prom_sweep_counter.labels(transition=transition).inc(safe_count)
