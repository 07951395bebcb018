"""Tracing, metrics and logging instrumentation for databases and applications."""

__version__ = "0.1.9"