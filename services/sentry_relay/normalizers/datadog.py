"""
Datadog log record -> Sentry event mapper.

Datadog forwards loosely-typed JSON: any field may be missing, null or of
the wrong type, and most fields exist both at the top level and inside
``attributes``. map_datadog() never raises; every field has a fallback.
"""
import json
import math
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from dateutil import parser as date_parser

from .message import normalize_message

MAX_MESSAGE_LENGTH = 8000
MAX_ORIGINAL_MESSAGE_LENGTH = 2000

PLATFORM = "other"
LOGGER_NAME = "datadog"

# Datadog status / syslog severity names -> Sentry level
LEVEL_MAP = {
    "fatal": "fatal", "emergency": "fatal", "critical": "fatal", "alert": "fatal",
    "warn": "warning", "warning": "warning",
    "error": "error", "err": "error",
    "debug": "debug",
    "info": "info", "notice": "info",
}
DEFAULT_LEVEL = "error"


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _first_present(*values):
    """First value that is not None."""
    for value in values:
        if value is not None:
            return value
    return None


def _first_truthy(*values, default=None):
    for value in values:
        if value:
            return value
    return default


def to_json(value: Any) -> str:
    """Compact JSON, the way the log forwarder would have sent it."""
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=str)


def map_level(level: Any) -> str:
    """Map a Datadog status/level to one of Sentry's five levels."""
    if level is None:
        return DEFAULT_LEVEL
    return LEVEL_MAP.get(str(level).lower(), DEFAULT_LEVEL)


def normalize_env(env: str) -> str:
    return "prod" if env == "production" else env


def _format_iso(dt: datetime) -> str:
    dt = dt.astimezone(timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def _from_epoch_ms(millis: float) -> Optional[str]:
    if not math.isfinite(millis):
        return None
    return _format_iso(datetime.fromtimestamp(millis / 1000, tz=timezone.utc))


# Two defaults that differ in every date part; a string that leaves any of
# year/month/day unspecified parses differently against each
_DEFAULT_DATES = (datetime(2000, 1, 1), datetime(2001, 2, 2))


def _parse_date_string(value: str) -> Optional[datetime]:
    first, second = (date_parser.parse(value, default=d) for d in _DEFAULT_DATES)
    if first.date() != second.date():
        return None
    if first.tzinfo is None:
        first = first.replace(tzinfo=timezone.utc)
    return first


def _as_epoch_millis(value: str) -> Optional[float]:
    # float() also takes "1_000"; Datadog's forwarder never sends that
    if "_" in value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def to_iso(value: Any) -> Optional[str]:
    """
    Convert a Datadog date to an ISO-8601 UTC string.

    Numbers (and numeric strings) are epoch milliseconds, other strings are
    parsed as dates. Returns None when the value can't be converted,
    including date strings missing their year, month or day.
    """
    if value is None or isinstance(value, bool):
        return None
    try:
        if isinstance(value, (int, float)):
            return _from_epoch_ms(float(value))
        if not isinstance(value, str) or not value.strip():
            return None
        millis = _as_epoch_millis(value)
        if millis is not None:
            return _from_epoch_ms(millis)
        parsed = _parse_date_string(value)
        return _format_iso(parsed) if parsed else None
    except (ValueError, OverflowError, OSError):
        return None


def _message_text(log: Dict[str, Any], record: Any) -> str:
    raw = _first_present(log.get("message"), log.get("msg"))
    if raw is None:
        return to_json(record)
    return raw if isinstance(raw, str) else to_json(raw)


def _prune(d: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in d.items() if v is not None}


def map_datadog(record: Any) -> Dict[str, Any]:
    """
    Map one Datadog log record to a Sentry event.

    Args:
        record: Decoded Datadog log record (normally a dict)

    Returns:
        Sentry event dict (without event_id, which the envelope assigns)
    """
    log = _as_dict(record)
    attrs = _as_dict(log.get("attributes"))
    func = _as_dict(attrs.get("function"))
    convex = attrs.get("convex")

    msg = _message_text(log, record)
    normalized, extracted_ids = normalize_message(msg)

    date = _first_present(log.get("date"), log.get("timestamp"), attrs.get("timestamp"))
    level = _first_present(log.get("level"), log.get("status"),
                           attrs.get("log_level"), attrs.get("level"))

    service = _first_truthy(log.get("service"), attrs.get("service"), default="unknown")
    host = _first_truthy(log.get("host"), attrs.get("hostname"), default="unknown")
    env = _first_truthy(
        log.get("environment"),
        log.get("env"),
        attrs.get("env"),
        _as_dict(convex).get("deployment_type"),
        default="prod",
    )

    function_path = func.get("path") or "n/a"
    function_type = func.get("type")
    retry_count = func.get("mutation_retry_count")
    request_id = func.get("request_id")

    event = {
        "message": normalized[:MAX_MESSAGE_LENGTH],
        "level": map_level(level),
        "timestamp": to_iso(date),
        "platform": PLATFORM,
        "logger": LOGGER_NAME,
        "environment": normalize_env(str(env)),
        "tags": {
            "service": str(service),
            "host": str(host),
            "dd_source": str(log.get("source") or "datadog"),
            "function_path": str(function_path),
            "function_type": str(function_type or "unknown"),
            "has_retry": "true" if retry_count else "false",
        },
        "extra": _prune({
            "datadog_id": log.get("_id"),
            "topic": attrs.get("topic"),
            "convex": convex,
            "function_metadata": _prune({
                "path": function_path,
                "type": function_type,
                "mutation_retry_count": retry_count,
                "request_id": request_id,
            }),
            "extracted_ids": extracted_ids,
            "original_message": msg[:MAX_ORIGINAL_MESSAGE_LENGTH],
            # Sentry caps event items at ~1MB; attributes are passed as-is
            "attributes": log.get("attributes"),
        }),
    }
    if event["timestamp"] is None:
        del event["timestamp"]
    return event
