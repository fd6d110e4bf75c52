"""Bookstore API with an OpenTelemetry instrumentation core."""

__version__ = "1.0.0"
