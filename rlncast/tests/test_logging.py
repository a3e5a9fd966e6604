import io
import json
import logging

import pytest

from rlncast import logging as rlog


@pytest.fixture
def root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    rlog.clear_context()
    yield root
    rlog.clear_context()
    for h in list(root.handlers):
        root.removeHandler(h)
    for h in handlers:
        root.addHandler(h)
    root.setLevel(level)


def test_json_lines_carry_context_and_extras(root_logger):
    buf = io.StringIO()
    rlog.configure(json=True, level="DEBUG", stream=buf)
    log = rlog.get_logger("rlncast.test")
    with rlog.trace_scope("abc123"):
        rlog.bind(component="receiver", topic="telemetry")
        log.info("payload decoded", extra={"message_id": b"\x01\x02", "size": 900})

    record = json.loads(buf.getvalue().strip().splitlines()[-1])
    assert record["msg"] == "payload decoded"
    assert record["level"] == "INFO"
    assert record["trace_id"] == "abc123"
    assert record["component"] == "receiver"
    assert record["topic"] == "telemetry"
    assert record["message_id"] == "0102"
    assert record["size"] == 900
    assert rlog.context() == {}


def test_text_format_is_one_line_with_fields(root_logger):
    buf = io.StringIO()
    rlog.configure(json=False, level="INFO", stream=buf)
    rlog.with_fields(rlog.get_logger("rlncast.test"), topic="orders").warning("publish failed", extra={"sent": 3})
    line = buf.getvalue().strip()
    assert "| WARNING |" in line or "| WARN" in line
    assert "topic=orders" in line
    assert "sent=3" in line
    assert line.endswith("publish failed")


def test_level_filtering(root_logger):
    buf = io.StringIO()
    rlog.configure(json=True, level="WARNING", stream=buf)
    rlog.get_logger("rlncast.test").info("hidden")
    assert buf.getvalue() == ""


def test_unbind_removes_fields(root_logger):
    rlog.bind(topic="a", component="b")
    rlog.unbind("topic")
    assert rlog.context() == {"component": "b"}


def test_configure_from_config_honours_format(root_logger):
    from rlncast.config import CastConfig, LoggingConfig

    buf = io.StringIO()
    rlog.configure_from_config(CastConfig(logging=LoggingConfig(level="INFO", format="json")), stream=buf)
    rlog.get_logger("rlncast.test").info("hello")
    assert json.loads(buf.getvalue())["msg"] == "hello"
