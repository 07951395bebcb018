import logging

from otelextra.log.globals import ctx, global_logger, global_sugared_logger, replace_globals
from otelextra.log.logger import LOG_MESSAGE, Level, new, with_min_level
from otelextra.trace import SpanRecorder, TracerProvider, use_span


def _traced():
    provider = TracerProvider()
    recorder = SpanRecorder()
    provider.add_span_processor(recorder)
    return recorder, provider.get_tracer("test").start_span("main")


def test_sugared_matches_logger():
    assert global_sugared_logger().desugar() is global_logger()


def test_replace_and_restore():
    original = global_logger()
    replacement = new(logging.getLogger("otelextra.tests.globals"))
    restore = replace_globals(replacement)
    try:
        assert global_logger() is replacement
        assert global_sugared_logger().desugar() is replacement
    finally:
        restore()
    assert global_logger() is original
    assert global_sugared_logger().desugar() is original


def test_ctx_binds_span_and_logger():
    _, span = _traced()
    bound = ctx(span)
    assert bound.context() is span
    assert bound.logger() is global_logger()


def test_ctx_uses_active_span():
    _, span = _traced()
    with use_span(span):
        bound = ctx()
    assert bound.context() is span


def test_ctx_logs_through_replaced_logger():
    recorder, span = _traced()
    logger = new(logging.getLogger("otelextra.tests.globals"), with_min_level(Level.INFO))
    restore = replace_globals(logger)
    try:
        ctx(span).info("hello")
    finally:
        restore()
    span.end()
    events = recorder.ended()[0].events
    assert len(events) == 1
    assert events[0].attributes[LOG_MESSAGE] == "hello"