"""Application services: settings, logging, telemetry wiring and diagnostics."""

from .config import AppConfig, load_config, save_config
from .diagnostics import DiagnosticsExporter, build_doctor_payload
from .logging_setup import configure_logging, get_logger
from .session import build_telemetry

__all__ = [
    "AppConfig",
    "DiagnosticsExporter",
    "build_doctor_payload",
    "build_telemetry",
    "configure_logging",
    "get_logger",
    "load_config",
    "save_config",
]
