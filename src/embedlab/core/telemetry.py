"""OpenTelemetry telemetry for EmbedLab.

Only activates an SDK pipeline when:
- OTEL_EXPORTER_OTLP_ENDPOINT env var is set, OR
- telemetry.enabled=true in EmbedLab config

Otherwise the OpenTelemetry API's default (no-op) providers are used, so
instruments can always be created and recorded against.

Usage:
    from embedlab.core.telemetry import init_telemetry, get_meter, counter

    init_telemetry(config.telemetry)

    counter("embedlab.cache.errors").add(1, {"op": "set"})

    shutdown_telemetry()
"""

from __future__ import annotations

import os
from typing import TYPE_CHECKING, Any

import structlog
from opentelemetry import metrics as otel_metrics
from opentelemetry import trace as otel_trace
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

if TYPE_CHECKING:
    from embedlab.config.models import TelemetryConfig

log = structlog.get_logger(__name__)

_INSTRUMENTATION_NAME = "embedlab"

_tracer_provider: TracerProvider | None = None
_meter_provider: MeterProvider | None = None
_initialized: bool = False

# Instruments are cached per name; the API hands out proxies that rebind
# once a real provider is installed.
_counters: dict[str, Any] = {}


def _is_telemetry_enabled(config: TelemetryConfig | None) -> bool:
    if os.environ.get("OTEL_EXPORTER_OTLP_ENDPOINT"):
        return True
    return bool(config is not None and config.enabled)


def _get_otlp_endpoint(config: TelemetryConfig | None) -> str | None:
    endpoint = os.environ.get("OTEL_EXPORTER_OTLP_ENDPOINT")
    if endpoint:
        return endpoint
    if config is not None and config.otlp_endpoint:
        return config.otlp_endpoint
    return None


def _get_service_name(config: TelemetryConfig | None) -> str:
    service_name = os.environ.get("OTEL_SERVICE_NAME")
    if service_name:
        return service_name
    if config is not None:
        return config.service_name
    return "embedlab"


def _get_version() -> str:
    from importlib.metadata import PackageNotFoundError, version

    try:
        return version("embedlab")
    except PackageNotFoundError:
        return "dev"


def init_telemetry(config: TelemetryConfig | None = None) -> bool:
    """Initialize OpenTelemetry tracing and metrics.

    Returns:
        True if an exporting pipeline was installed, False if disabled.

    Idempotent - calling it again after the first initialization has no effect.
    """
    global _tracer_provider, _meter_provider, _initialized

    if _initialized:
        return _meter_provider is not None

    _initialized = True

    if not _is_telemetry_enabled(config):
        log.debug("telemetry.disabled")
        return False

    endpoint = _get_otlp_endpoint(config)
    if not endpoint:
        log.warning("telemetry.no_endpoint", hint="set telemetry.otlp_endpoint")
        return False

    try:
        from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
    except ImportError:
        log.warning("telemetry.exporter_missing", hint="pip install 'embedlab[otlp]'")
        return False

    insecure = endpoint.startswith("http://")
    resource = Resource.create(
        {"service.name": _get_service_name(config), "service.version": _get_version()}
    )

    _tracer_provider = TracerProvider(resource=resource)
    _tracer_provider.add_span_processor(
        BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint, insecure=insecure))
    )
    otel_trace.set_tracer_provider(_tracer_provider)

    reader = PeriodicExportingMetricReader(
        OTLPMetricExporter(endpoint=endpoint, insecure=insecure),
        export_interval_millis=60000,
    )
    _meter_provider = MeterProvider(resource=resource, metric_readers=[reader])
    otel_metrics.set_meter_provider(_meter_provider)

    log.info("telemetry.initialized", endpoint=endpoint)
    return True


def shutdown_telemetry() -> None:
    """Flush and shut down providers installed by ``init_telemetry``."""
    global _tracer_provider, _meter_provider, _initialized

    if not _initialized:
        return

    if _tracer_provider is not None:
        _tracer_provider.shutdown()
    if _meter_provider is not None:
        _meter_provider.shutdown()

    _tracer_provider = None
    _meter_provider = None
    _initialized = False


def get_tracer() -> otel_trace.Tracer:
    return otel_trace.get_tracer(_INSTRUMENTATION_NAME)


def get_meter() -> otel_metrics.Meter:
    return otel_metrics.get_meter(_INSTRUMENTATION_NAME)


def counter(name: str, description: str = "") -> Any:
    """Get (or create) a named counter instrument."""
    instrument = _counters.get(name)
    if instrument is None:
        instrument = get_meter().create_counter(name, description=description)
        _counters[name] = instrument
    return instrument


def is_telemetry_enabled() -> bool:
    return _meter_provider is not None
