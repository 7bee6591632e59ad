import json
import logging

from gridday.logging_utils import ColorFormatter, JsonFormatter, request_id_ctx


def make_record(**extra):
    record = logging.LogRecord("gridday.verifier", logging.WARNING, __file__, 1, "security_event", None, None)
    for k, v in extra.items():
        setattr(record, k, v)
    return record


def test_json_formatter_includes_request_id_and_extras():
    token = request_id_ctx.set("rid-1")
    try:
        out = json.loads(JsonFormatter().format(make_record(reason="INVALID_SIGNATURE", day_id=12, unrelated="x")))
    finally:
        request_id_ctx.reset(token)
    assert out["message"] == "security_event"
    assert out["level"] == "WARNING"
    assert out["request_id"] == "rid-1"
    assert out["reason"] == "INVALID_SIGNATURE" and out["day_id"] == 12
    assert "unrelated" not in out


def test_color_formatter_plain_mode():
    line = ColorFormatter(use_color=False).format(make_record(method="POST", path="/api/submit", status=409, duration_ms=3))
    assert "\033[" not in line
    assert "POST /api/submit 409 3ms" in line
    assert line.endswith("security_event")
