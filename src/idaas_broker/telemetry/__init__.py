"""Operational logging for idaas-broker."""

from idaas_broker.telemetry.system_logger import (
    ConsoleFormatter,
    JsonlFormatter,
    configure_system_logger_file,
    get_system_logger,
)

__all__ = [
    "ConsoleFormatter",
    "JsonlFormatter",
    "configure_system_logger_file",
    "get_system_logger",
]
