"""
Sentry envelope construction.

An envelope is three newline-terminated JSON lines: the envelope header,
the item header and the event payload.
"""
import json
import uuid
from datetime import datetime, timezone
from typing import Any, Dict
from urllib.parse import urlsplit

from . import __version__

SDK_NAME = "dd-to-sentry-relay"
ENVELOPE_CONTENT_TYPE = "application/x-sentry-envelope"


def envelope_url_from_dsn(dsn: str) -> str:
    """
    Derive the envelope endpoint from a DSN.

    https://<key>@o1.ingest.sentry.io/123 -> https://o1.ingest.sentry.io/api/123/envelope/

    Raises:
        ValueError: If the DSN has no host or project id
    """
    parts = urlsplit(dsn)
    host = parts.netloc.rpartition("@")[2]
    project_id = parts.path.lstrip("/")
    if not host or not project_id:
        raise ValueError(f"Invalid Sentry DSN: {dsn!r}")
    return f"https://{host}/api/{project_id}/envelope/"


def new_event_id() -> str:
    return uuid.uuid4().hex


def build_envelope(dsn: str, event: Dict[str, Any]) -> str:
    """
    Wrap a single event in an envelope.

    Args:
        dsn: Sentry DSN, echoed in the envelope header
        event: Sentry event dict

    Returns:
        Envelope body as text
    """
    event_id = new_event_id()
    header = {
        "event_id": event_id,
        "dsn": dsn,
        "sent_at": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        "sdk": {"name": SDK_NAME, "version": __version__},
    }
    payload = json.dumps({"event_id": event_id, **event}, ensure_ascii=False, default=str)
    item_header = {
        "type": "event",
        "length": len(payload.encode("utf-8")),
        "content_type": "application/json",
    }
    return f"{json.dumps(header)}\n{json.dumps(item_header)}\n{payload}\n"
