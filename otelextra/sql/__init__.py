"""Tracing and metrics instrumentation for DB-API database modules."""