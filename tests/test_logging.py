# tests/test_logging.py
import logging

from creativedesk.core.logging import KeyValueFormatter, RequestIdFilter, request_id_var


def _record(**extra):
    record = logging.makeLogRecord({"name": "creativedesk.test", "levelno": logging.INFO, "levelname": "INFO",
                                    "msg": "status_changed"})
    record.__dict__.update(extra)
    return record


def test_request_id_header_is_echoed(client):
    r = client.get("/api/health", headers={"X-Request-ID": "req-42"})
    assert r.headers["X-Request-ID"] == "req-42"

    generated = client.get("/api/health").headers["X-Request-ID"]
    assert generated and generated != "req-42"


def test_filter_stamps_request_id_from_context():
    token = request_id_var.set("req-7")
    try:
        record = _record()
        assert RequestIdFilter().filter(record)
    finally:
        request_id_var.reset(token)
    assert record.request_id == "req-7"

    outside = _record()
    RequestIdFilter().filter(outside)
    assert outside.request_id == "-"


def test_formatter_renders_extra_fields():
    formatter = KeyValueFormatter("%(levelname)s [%(request_id)s] %(message)s")
    record = _record(ticket_id=5, to="DONE")
    RequestIdFilter().filter(record)

    assert formatter.format(record) == "INFO [-] status_changed ticket_id=5 to=DONE"
