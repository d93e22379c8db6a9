"""Logging utilities."""

from .telemetry import configure_logging, generate_request_id, request_context

__all__ = ["configure_logging", "generate_request_id", "request_context"]
