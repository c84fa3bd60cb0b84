"""OpenTelemetry + Prometheus fallback wiring for the co11y backend.

Everything here is a no-op until ``initialize`` runs with
``CO11Y_OTEL_ENABLED`` set. Instruments are declared once in ``_METRICS`` and
created for both OTLP export and the Prometheus fallback server.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, NamedTuple

from fastapi import FastAPI

from co11y import config

logger = logging.getLogger("co11y.observability")


class _MetricSpec(NamedTuple):
    name: str
    kind: str  # counter | histogram | gauge
    unit: str
    description: str
    labels: tuple[str, ...]


_METRICS: dict[str, _MetricSpec] = {
    "aggregation_runs": _MetricSpec(
        "co11y_aggregation_runs_total", "counter", "1",
        "Count of snapshot aggregation passes", ("trigger", "result"),
    ),
    "aggregation_latency": _MetricSpec(
        "co11y_aggregation_latency_ms", "histogram", "ms",
        "Latency of snapshot aggregation passes", ("trigger", "result"),
    ),
    "parser_failures": _MetricSpec(
        "co11y_parser_failures_total", "counter", "1",
        "Count of skipped transcript lines and failed session analyses", ("parser",),
    ),
    "broadcast_frames": _MetricSpec(
        "co11y_broadcast_frames_total", "counter", "1",
        "Frames offered to push clients by outcome", ("event", "result"),
    ),
    "connected_clients": _MetricSpec(
        "co11y_connected_clients", "gauge", "1",
        "Currently attached push clients", (),
    ),
}

_initialized = False
_enabled = False
_tracer: Any | None = None
_trace_provider: Any | None = None
_meter_provider: Any | None = None
_fastapi_instrumentor: Any | None = None

_otel_instruments: dict[str, Any] = {}
_prom_instruments: dict[str, Any] = {}


def _signal_endpoint(base_endpoint: str, signal: str) -> str | None:
    """Append ``/v1/<signal>`` to an OTLP base URL unless it is already there."""
    endpoint = (base_endpoint or "").strip().rstrip("/")
    if not endpoint:
        return None
    suffix = f"/v1/{signal}"
    if endpoint.endswith(suffix):
        return endpoint
    if endpoint.endswith("/v1"):
        endpoint = endpoint[: -len("/v1")]
    return f"{endpoint}{suffix}"


def _label_values(spec: _MetricSpec, values: dict[str, str]) -> dict[str, str]:
    return {key: (values.get(key) or "").strip() or "unknown" for key in spec.labels}


def _create_otel_instruments(meter: Any) -> None:
    for key, spec in _METRICS.items():
        if spec.kind == "counter":
            factory = meter.create_counter
        elif spec.kind == "histogram":
            factory = meter.create_histogram
        else:
            factory = meter.create_up_down_counter
        _otel_instruments[key] = factory(spec.name, unit=spec.unit, description=spec.description)


def _start_prometheus_fallback() -> None:
    if config.PROM_PORT <= 0:
        return
    try:
        from prometheus_client import Counter, Gauge, Histogram, start_http_server

        start_http_server(config.PROM_PORT)
        kinds = {"counter": Counter, "histogram": Histogram, "gauge": Gauge}
        for key, spec in _METRICS.items():
            _prom_instruments[key] = kinds[spec.kind](spec.name, spec.description, list(spec.labels))
        logger.info("Prometheus fallback metrics server listening on port %s", config.PROM_PORT)
    except Exception as exc:  # noqa: BLE001
        logger.warning("Prometheus fallback not started: %s", exc)
        _prom_instruments.clear()


def initialize(app: FastAPI | None = None) -> None:
    global _initialized, _enabled, _tracer, _trace_provider, _meter_provider, _fastapi_instrumentor

    if _initialized:
        if _enabled and app and _fastapi_instrumentor:
            _fastapi_instrumentor.instrument_app(app)
        return

    _initialized = True

    if not config.OTEL_ENABLED:
        logger.info("OpenTelemetry disabled (CO11Y_OTEL_ENABLED=false)")
        return

    from opentelemetry import metrics, trace
    from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter
    from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
    from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
    from opentelemetry.sdk.metrics import MeterProvider
    from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
    from opentelemetry.sdk.resources import Resource
    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.trace.export import BatchSpanProcessor

    service_name = config.OTEL_SERVICE_NAME or "co11y-backend"
    resource = Resource.create({"service.name": service_name, "service.namespace": "co11y"})

    _trace_provider = TracerProvider(resource=resource)
    _trace_provider.add_span_processor(
        BatchSpanProcessor(OTLPSpanExporter(endpoint=_signal_endpoint(config.OTEL_ENDPOINT, "traces")))
    )
    trace.set_tracer_provider(_trace_provider)
    _tracer = trace.get_tracer("co11y.backend")

    reader = PeriodicExportingMetricReader(
        OTLPMetricExporter(endpoint=_signal_endpoint(config.OTEL_ENDPOINT, "metrics"))
    )
    _meter_provider = MeterProvider(resource=resource, metric_readers=[reader])
    metrics.set_meter_provider(_meter_provider)
    _create_otel_instruments(metrics.get_meter("co11y.backend"))

    _fastapi_instrumentor = FastAPIInstrumentor()
    _enabled = True
    if app:
        _fastapi_instrumentor.instrument_app(app)

    _start_prometheus_fallback()
    logger.info("OpenTelemetry initialized (service=%s endpoint=%s)", service_name, config.OTEL_ENDPOINT)


def shutdown(app: FastAPI | None = None) -> None:
    global _enabled
    if not _initialized:
        return
    steps = (
        ("FastAPI uninstrument", lambda: app and _fastapi_instrumentor and _fastapi_instrumentor.uninstrument_app(app)),
        ("Meter provider shutdown", lambda: _meter_provider is not None and _meter_provider.shutdown()),
        ("Trace provider shutdown", lambda: _trace_provider is not None and _trace_provider.shutdown()),
    )
    for label, step in steps:
        try:
            step()
        except Exception as exc:  # noqa: BLE001
            logger.debug("%s failed: %s", label, exc)
    _enabled = False


@contextmanager
def start_span(name: str, attributes: dict[str, Any] | None = None):
    if not _enabled or _tracer is None:
        yield None
        return
    with _tracer.start_as_current_span(name) as span:
        for key, value in (attributes or {}).items():
            if value is not None:
                span.set_attribute(key, value)
        yield span


def _add(key: str, amount: float, **labels: str) -> None:
    """Increment a counter (or move a gauge) on every active backend."""
    spec = _METRICS[key]
    values = _label_values(spec, labels)
    otel = _otel_instruments.get(key) if _enabled else None
    if otel is not None:
        otel.add(amount, values)
    prom = _prom_instruments.get(key)
    if prom is not None and spec.kind == "counter":
        (prom.labels(**values) if values else prom).inc(amount)


def _observe(key: str, value: float, **labels: str) -> None:
    spec = _METRICS[key]
    values = _label_values(spec, labels)
    otel = _otel_instruments.get(key) if _enabled else None
    if otel is not None:
        otel.record(value, values)
    prom = _prom_instruments.get(key)
    if prom is not None:
        prom.labels(**values).observe(value)


def record_aggregation(trigger: str, result: str, duration_ms: float) -> None:
    _add("aggregation_runs", 1, trigger=trigger, result=result)
    _observe("aggregation_latency", max(0.0, float(duration_ms)), trigger=trigger, result=result)


def record_parser_failure(parser: str) -> None:
    _add("parser_failures", 1, parser=parser)


def record_broadcast(event: str, *, delivered: int, dropped: int = 0) -> None:
    for result, count in (("delivered", delivered), ("dropped", dropped)):
        if count > 0:
            _add("broadcast_frames", int(count), event=event, result=result)


def record_client_count(delta: int, total: int) -> None:
    if delta:
        _add("connected_clients", int(delta))
    gauge = _prom_instruments.get("connected_clients")
    if gauge is not None:
        gauge.set(max(0, int(total)))
