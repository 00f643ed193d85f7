from __future__ import annotations

import json
import logging

from fastapi.testclient import TestClient

from propdesk.logging_config import JsonFormatter, KeyValueFormatter
from propdesk.main import create_app
from propdesk.middleware.request_id import request_id_ctx


def _record(**extra) -> logging.LogRecord:
    rec = logging.LogRecord("propdesk.services.tasks", logging.INFO, __file__, 1, "task_created", None, None)
    for k, v in extra.items():
        setattr(rec, k, v)
    return rec


def test_json_line_carries_extras_and_request_id():
    token = request_id_ctx.set("req-1")
    try:
        line = json.loads(JsonFormatter().format(_record(entity="Task", entity_id=7, actor="user:1")))
    finally:
        request_id_ctx.reset(token)

    assert line["message"] == "task_created"
    assert line["level"] == "INFO"
    assert (line["entity"], line["entity_id"], line["actor"]) == ("Task", 7, "user:1")
    assert line["request_id"] == "req-1"
    assert "lineno" not in line


def test_key_value_line_for_terminals():
    text = KeyValueFormatter().format(_record(entity="Invoice", entity_id=3))
    assert "INFO propdesk.services.tasks task_created" in text
    assert text.endswith("entity=Invoice entity_id=3")


def test_request_id_is_echoed_or_replaced():
    client = TestClient(create_app())

    r = client.get("/api/health", headers={"X-Request-ID": "abc-123"})
    assert r.headers["X-Request-ID"] == "abc-123"

    r = client.get("/api/health", headers={"X-Request-ID": "bad id with spaces"})
    assert r.headers["X-Request-ID"] != "bad id with spaces"
    assert len(r.headers["X-Request-ID"]) == 32
