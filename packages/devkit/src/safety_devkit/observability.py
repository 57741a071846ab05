from __future__ import annotations

import logging

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider

_otel_configured = False
_logging_configured = False

LOG_FORMAT = "%(asctime)s %(levelname)s [%(service_name)s] %(name)s %(message)s"


class ServiceContextFilter(logging.Filter):
    """Stamps every record with the owning service name."""

    def __init__(self, service_name: str) -> None:
        super().__init__()
        self._service_name = service_name

    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, "service_name", None):
            record.service_name = self._service_name
        return True


def configure_logging(service_name: str, level: str = "INFO") -> None:
    global _logging_configured
    if _logging_configured:
        return
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"unknown log level: {level}")
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.addFilter(ServiceContextFilter(service_name))
    root = logging.getLogger()
    root.addHandler(handler)
    root.setLevel(numeric_level)
    _logging_configured = True


def configure_otel(service_name: str) -> None:
    global _otel_configured
    if _otel_configured:
        return
    provider = TracerProvider(resource=Resource.create({"service.name": service_name}))
    trace.set_tracer_provider(provider)
    _otel_configured = True
