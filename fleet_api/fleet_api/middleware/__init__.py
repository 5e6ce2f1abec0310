"""Middleware components for the fleet API."""

from __future__ import annotations

from fleet_api.middleware.json_formatter import JSONFormatter, install_json_logging
from fleet_api.middleware.logging import CORRELATION_HEADER, RequestLoggingMiddleware

__all__ = [
    "CORRELATION_HEADER",
    "JSONFormatter",
    "RequestLoggingMiddleware",
    "install_json_logging",
]
