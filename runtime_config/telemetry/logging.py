# runtime_config/telemetry/logging.py
from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, FrozenSet, Mapping

from runtime_config.middleware.request_id import get_request_id

# Attributes every LogRecord carries; anything else arrived via ``extra=``.
_RECORD_ATTRS: FrozenSet[str] = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime", "taskName"}

# Extra fields whose values must never reach a log sink.
_SENSITIVE_MARKERS = ("secret", "password", "anon_key", "service_role", "token", "passphrase")
_MASK = "***"


def _utc_stamp(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat().replace("+00:00", "Z")


def _is_sensitive(field: str) -> bool:
    lowered = field.lower()
    return any(marker in lowered for marker in _SENSITIVE_MARKERS)


def _plain(value: Any) -> Any:
    """Reduce an extra value to something ``json.dumps`` accepts."""
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, datetime):
        return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")
    if isinstance(value, Mapping):
        return {str(k): (_MASK if _is_sensitive(str(k)) else _plain(v)) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_plain(v) for v in value]
    return str(value)


class JsonFormatter(logging.Formatter):
    """One JSON object per line: ts, level, logger, message, request_id, extras."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": _utc_stamp(record.created),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        extras = {
            k: v
            for k, v in record.__dict__.items()
            if k not in _RECORD_ATTRS and not k.startswith("_")
        }
        rid = extras.pop("request_id", None) or get_request_id()
        if rid:
            payload["request_id"] = rid
        for key, value in extras.items():
            payload[key] = _MASK if _is_sensitive(key) else _plain(value)

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


_configured = False


def configure_root_logging(level: int | str = "INFO") -> None:
    """Route the root logger to stdout as JSON. Repeat calls are no-ops."""
    global _configured
    if _configured:
        return

    root = logging.getLogger()
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    root.setLevel(level)

    for existing in list(root.handlers):
        root.removeHandler(existing)
    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(JsonFormatter())
    root.addHandler(handler)
    _configured = True
