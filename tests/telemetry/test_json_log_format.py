from __future__ import annotations

import json
import logging
import sys

from runtime_config.middleware.request_id import _REQUEST_ID
from runtime_config.telemetry.logging import JsonFormatter


def _record(msg: str = "hello", **extra) -> logging.LogRecord:
    record = logging.LogRecord("runtime_config.test", logging.INFO, __file__, 1, msg, None, None)
    for k, v in extra.items():
        setattr(record, k, v)
    return record


def test_stable_keys_and_extras() -> None:
    out = json.loads(JsonFormatter().format(_record(environment="staging", keys={"a", "a"}, raw=b"x")))
    assert out["level"] == "INFO"
    assert out["logger"] == "runtime_config.test"
    assert out["message"] == "hello"
    assert out["ts"].endswith("Z")
    assert out["environment"] == "staging"
    assert out["keys"] == ["a"]
    assert out["raw"] == "x"


def test_request_id_comes_from_context() -> None:
    token = _REQUEST_ID.set("rid-7")
    try:
        out = json.loads(JsonFormatter().format(_record()))
    finally:
        _REQUEST_ID.reset(token)
    assert out["request_id"] == "rid-7"


def test_exception_is_rendered() -> None:
    try:
        raise RuntimeError("kaboom")
    except RuntimeError:
        record = logging.LogRecord("x", logging.ERROR, __file__, 1, "failed", None, sys.exc_info())
    out = json.loads(JsonFormatter().format(record))
    assert "kaboom" in out["exc_info"]


def test_sensitive_extras_are_masked() -> None:
    out = json.loads(
        JsonFormatter().format(
            _record(supabase_anon_key="anon-123", settings={"jwt_secret": "s", "env": "prod"})
        )
    )
    assert out["supabase_anon_key"] == "***"
    assert out["settings"] == {"jwt_secret": "***", "env": "prod"}
