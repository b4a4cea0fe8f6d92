import logging
import uuid

from osbroker.blog import Blog, binding_id, instance_id
from osbroker.context import Context, ContextKey


class _Capture(logging.Handler):
    def __init__(self):
        super().__init__(level=logging.DEBUG)
        self.records = []

    def emit(self, record):
        self.records.append(record)


def _records_after(action):
    """Run action against a fresh Blog and return the log records it produced."""
    logger = logging.getLogger(f"blog-test-{uuid.uuid4()}")
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    handler = _Capture()
    logger.addHandler(handler)
    try:
        action(Blog(logger))
    finally:
        logger.removeHandler(handler)
    return handler.records


def test_session_logs_context_values():
    ctx = (
        Context()
        .with_value(ContextKey.CORRELATION_ID, "fake-correlation-id")
        .with_value(ContextKey.REQUEST_IDENTITY, "fake-request-id")
    )
    records = _records_after(lambda blog: blog.session(ctx, "prefix").info("hello"))

    data = records[0].data
    assert data[ContextKey.CORRELATION_ID.value] == "fake-correlation-id"
    assert data[ContextKey.REQUEST_IDENTITY.value] == "fake-request-id"


def test_session_without_context_values():
    records = _records_after(lambda blog: blog.session(Context(), "prefix").info("hello"))

    data = records[0].data
    assert ContextKey.CORRELATION_ID.value not in data
    assert ContextKey.REQUEST_IDENTITY.value not in data


def test_session_prefixes_message():
    records = _records_after(lambda blog: blog.session(Context(), "prefix").info("hello"))
    assert records[0].getMessage() == "prefix.hello"


def test_nested_sessions_join_prefixes():
    records = _records_after(
        lambda blog: blog.session(Context(), "outer").session(Context(), "inner").info("msg")
    )
    assert records[0].getMessage() == "outer.inner.msg"


def test_error_logs_error_field_and_level():
    records = _records_after(
        lambda blog: blog.session(Context(), "bind").error("unknown-error", ValueError("boom"))
    )
    record = records[0]
    assert record.levelno == logging.ERROR
    assert record.getMessage() == "bind.unknown-error"
    assert record.data["error"] == "boom"


def test_session_attributes_are_kept():
    def action(blog):
        session = blog.session(Context(), "bind", **instance_id("i-1"), **binding_id("b-1"))
        session.info("start", state="succeeded")

    records = _records_after(action)
    data = records[0].data
    assert data["instance-id"] == "i-1"
    assert data["binding-id"] == "b-1"
    assert data["state"] == "succeeded"


def test_with_fields_keeps_prefix_and_adds_fields():
    def action(blog):
        base = blog.session(Context(), "provision")
        extended = base.with_fields(details="d")
        extended.info("go")
        base.info("go")

    records = _records_after(action)
    assert records[0].getMessage() == "provision.go"
    assert records[0].data["details"] == "d"
    assert "details" not in records[1].data


def test_id_helpers():
    assert instance_id("abc") == {"instance-id": "abc"}
    assert binding_id("xyz") == {"binding-id": "xyz"}