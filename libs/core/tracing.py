from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator, Mapping
from urllib.parse import urlparse, urlunparse

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import Status, StatusCode

LOGGER = logging.getLogger(__name__)

TRACER_NAME = "sitebuilder.tools"

_TRACING_CONFIGURED = False


def configure_tracing(service_name: str, endpoint: str | None = None) -> bool:
    global _TRACING_CONFIGURED
    if _TRACING_CONFIGURED:
        return True
    resolved_endpoint = normalize_otlp_traces_endpoint(endpoint)
    resource = Resource.create({"service.name": service_name})
    provider = TracerProvider(resource=resource)
    exporter = (
        OTLPSpanExporter(endpoint=resolved_endpoint) if resolved_endpoint else OTLPSpanExporter()
    )
    provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(provider)
    _TRACING_CONFIGURED = True
    LOGGER.info("tracing_configured", extra={"service": service_name})
    return True


@contextmanager
def start_span(
    name: str,
    *,
    attributes: Mapping[str, Any] | None = None,
    tracer_name: str = TRACER_NAME,
) -> Iterator[Any]:
    tracer = trace.get_tracer(tracer_name)
    with tracer.start_as_current_span(name) as span:
        set_span_attributes(span, attributes)
        try:
            yield span
        except Exception as exc:
            span.record_exception(exc)
            span.set_status(Status(StatusCode.ERROR, str(exc)))
            raise


def set_span_attributes(span: Any, attributes: Mapping[str, Any] | None) -> None:
    if not attributes:
        return
    for key, value in attributes.items():
        if not isinstance(key, str) or not key:
            continue
        normalized = _normalize_attribute_value(value)
        if normalized is None:
            continue
        span.set_attribute(key, normalized)


def _normalize_attribute_value(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, (list, tuple)):
        normalized_list: list[Any] = []
        for item in value:
            normalized_item = _normalize_attribute_value(item)
            if isinstance(normalized_item, (bool, int, float, str)):
                normalized_list.append(normalized_item)
        return normalized_list or None
    return str(value)


def normalize_otlp_traces_endpoint(endpoint: str | None) -> str | None:
    if endpoint is None:
        return None
    raw = endpoint.strip()
    if not raw:
        return None
    parsed = urlparse(raw)
    if not parsed.scheme or not parsed.netloc:
        return raw
    path = parsed.path.rstrip("/")
    if not path.endswith("/v1/traces"):
        path = f"{path}/v1/traces"
    return urlunparse(parsed._replace(path=path))
