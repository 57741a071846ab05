"""Shared runtime concerns for the safety companion: settings, logging, clocks."""

from safety_devkit.config import CompanionSettings, load_settings
from safety_devkit.observability import configure_logging, configure_otel
from safety_devkit.timezone import local_now, resolve_zone, to_local

__all__ = [
    "CompanionSettings",
    "configure_logging",
    "configure_otel",
    "load_settings",
    "local_now",
    "resolve_zone",
    "to_local",
]
