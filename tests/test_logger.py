import logging
from datetime import timedelta

import pytest

from otelextra.log import fields as f
from otelextra.log.logger import (
    CODE_FILEPATH,
    CODE_FUNCTION,
    CODE_LINENO,
    EXCEPTION_STACKTRACE,
    LOG_MESSAGE,
    LOG_SEVERITY,
    Level,
    Logger,
    new,
    version,
    with_caller,
    with_error_status_level,
    with_min_level,
    with_stack_trace,
    with_trace_id_field,
)
from otelextra.trace import SpanRecorder, StatusCode, TracerProvider

LOGGER_NAME = "tests.otelextra.logger"


@pytest.fixture
def logger():
    return new(logging.getLogger(LOGGER_NAME), with_min_level(Level.INFO))


def run(log):
    recorder = SpanRecorder()
    provider = TracerProvider()
    provider.add_span_processor(recorder)
    span = provider.get_tracer("test").start_span("main")
    log(span)
    span.end()
    spans = recorder.ended()
    assert len(spans) == 1
    return spans[0]


def single_event(span):
    events = span.events
    assert len(events) == 1
    assert events[0].name == "log"
    return events[0].attributes


def require_code_attrs(attrs):
    assert "test_logger" in attrs[CODE_FUNCTION]
    assert attrs[CODE_FILEPATH].endswith("test_logger.py")
    assert isinstance(attrs[CODE_LINENO], int) and attrs[CODE_LINENO] > 0


def test_ctx_info(logger):
    attrs = single_event(run(lambda span: logger.ctx(span).info("hello")))
    assert attrs[LOG_SEVERITY] == "INFO"
    assert attrs[LOG_MESSAGE] == "hello"
    require_code_attrs(attrs)


def test_info_context(logger):
    attrs = single_event(run(lambda span: logger.info_context(span, "hello")))
    assert attrs[LOG_SEVERITY] == "INFO"
    assert attrs[LOG_MESSAGE] == "hello"
    require_code_attrs(attrs)


def test_warn_with_string_field(logger):
    attrs = single_event(
        run(lambda span: logger.ctx(span).warn("hello", f.string("foo", "bar")))
    )
    assert attrs[LOG_SEVERITY] == "WARN"
    assert attrs[LOG_MESSAGE] == "hello"
    assert attrs["foo"] == "bar"
    require_code_attrs(attrs)


def test_warn_with_strings_field(logger):
    attrs = single_event(
        run(
            lambda span: logger.ctx(span).warn(
                "hello", f.strings("foo", ["bar1", "bar2", "bar3"])
            )
        )
    )
    assert attrs[LOG_SEVERITY] == "WARN"
    assert attrs["foo"] == ["bar1", "bar2", "bar3"]
    require_code_attrs(attrs)


def test_with_fields_are_added(logger):
    attrs = single_event(
        run(
            lambda span: logger.ctx(span)
            .with_fields(f.string("baz", "baz1"))
            .with_fields(f.string("faz", "faz1"))
            .warn("hello", f.strings("foo", ["bar1", "bar2", "bar3"]))
        )
    )
    assert attrs[LOG_MESSAGE] == "hello"
    assert attrs["foo"] == ["bar1", "bar2", "bar3"]
    assert attrs["baz"] == "baz1"
    assert attrs["faz"] == "faz1"
    require_code_attrs(attrs)


def test_with_fields_does_not_change_original(logger):
    extended = logger.with_fields(f.string("baz", "baz1"))
    assert logger.extra_fields == ()
    assert extended.extra_fields == (f.string("baz", "baz1"),)


def test_durations_field(logger):
    values = [timedelta(milliseconds=1), timedelta(seconds=1), timedelta(hours=1)]
    attrs = single_event(
        run(lambda span: logger.ctx(span).warn("hello", f.durations("foo", values)))
    )
    assert attrs["foo"] == ["1ms", "1s", "1h0m0s"]
    require_code_attrs(attrs)


def test_error_field(logger):
    span = run(lambda s: logger.ctx(s).error("hello", f.error(ValueError("some error"))))
    attrs = single_event(span)
    assert attrs[LOG_SEVERITY] == "ERROR"
    assert attrs[LOG_MESSAGE] == "hello"
    assert attrs["exception.type"] == "ValueError"
    assert attrs["exception.message"] == "some error"
    assert span.status is StatusCode.ERROR
    assert span.status_description == "hello"
    require_code_attrs(attrs)


def test_stack_trace(logger):
    attrs = single_event(
        run(lambda span: logger.clone(with_stack_trace(True)).ctx(span).info("hello"))
    )
    assert "test_logger.py" in attrs[EXCEPTION_STACKTRACE]
    require_code_attrs(attrs)


def test_clone_leaves_original_untouched(logger):
    clone = logger.clone(with_stack_trace(True))
    assert clone.stack_trace is True
    assert logger.stack_trace is False


def test_below_min_level_records_nothing(logger):
    span = run(lambda s: logger.ctx(s).debug("hello"))
    assert span.events == []


def test_default_min_level_is_warn():
    log = new(logging.getLogger(LOGGER_NAME))
    span = run(lambda s: (log.ctx(s).info("skipped"), log.ctx(s).warn("kept")))
    assert [e.attributes[LOG_MESSAGE] for e in span.events] == ["kept"]


def test_warn_does_not_set_error_status(logger):
    span = run(lambda s: logger.ctx(s).warn("hello"))
    assert span.status is StatusCode.UNSET


def test_error_status_level_option():
    log = new(logging.getLogger(LOGGER_NAME), with_error_status_level(Level.WARN))
    span = run(lambda s: log.ctx(s).warn("careful"))
    assert span.status is StatusCode.ERROR


def test_without_caller(logger):
    attrs = single_event(
        run(lambda span: logger.clone(with_caller(False)).ctx(span).info("hello"))
    )
    assert CODE_FUNCTION not in attrs
    assert CODE_FILEPATH not in attrs


def test_dpanic_severity_is_panic(logger):
    attrs = single_event(run(lambda span: logger.ctx(span).dpanic("hello")))
    assert attrs[LOG_SEVERITY] == "PANIC"


def test_non_recording_span_gets_nothing(logger):
    provider = TracerProvider(sampled=False)
    span = provider.get_tracer("test").start_span("main")
    logger.ctx(span).error("hello")
    assert span.events == []
    assert span.is_recording() is False


def test_record_written_to_std_logger(logger, caplog):
    caplog.set_level(logging.DEBUG, logger=LOGGER_NAME)
    run(lambda span: logger.ctx(span).warn("hello", f.string("foo", "bar")))
    record = caplog.records[-1]
    assert record.getMessage() == "hello"
    assert record.levelno == logging.WARNING
    assert record.fields == {"foo": "bar"}
    assert record.filename == "test_logger.py"


def test_trace_id_field(caplog):
    log = new(logging.getLogger(LOGGER_NAME), with_trace_id_field(True))
    caplog.set_level(logging.DEBUG, logger=LOGGER_NAME)
    span = run(lambda s: log.ctx(s).error("hello"))
    record = caplog.records[-1]
    assert record.fields["trace_id"] == span.trace_id
    assert len(span.trace_id) == 32


def test_panic_raises(logger):
    with pytest.raises(RuntimeError, match="boom"):
        run(lambda span: logger.ctx(span).panic("boom"))


def test_fatal_exits(logger):
    with pytest.raises(SystemExit) as info:
        logger.fatal("bye")
    assert info.value.code == 1


def test_logger_with_ctx_accessors(logger):
    provider = TracerProvider()
    span = provider.get_tracer("test").start_span("main")
    bound = logger.ctx(span)
    assert bound.context() is span
    assert bound.logger() is logger
    assert bound.std_logger() is logging.getLogger(LOGGER_NAME)
    assert bound.clone(with_caller(False)).logger().caller is False


def test_min_level_error_filters_lower_levels(caplog):
    log = new(logging.getLogger(LOGGER_NAME), with_min_level(Level.ERROR))
    caplog.set_level(logging.DEBUG, logger=LOGGER_NAME)
    span = run(lambda s: (log.ctx(s).warn("low"), log.ctx(s).error("high")))
    assert [e.attributes[LOG_MESSAGE] for e in span.events] == ["high"]
    assert [r.levelno for r in caplog.records[-2:]] == [logging.WARNING, logging.ERROR]


def test_nop_logger_default():
    log = new()
    assert isinstance(log, Logger)
    assert log.std_logger.disabled is True


def test_version():
    assert version() == "0.1.9"