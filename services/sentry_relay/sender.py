"""
Delivery of Sentry envelopes.

One HTTP request per log record, sent concurrently. No retries: a record
whose request fails is counted and logged, nothing more.
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Iterable, Optional, Tuple

import requests

from .envelope import ENVELOPE_CONTENT_TYPE, build_envelope, envelope_url_from_dsn
from .normalizers import map_datadog

logger = logging.getLogger("sentry_relay")

DEFAULT_TIMEOUT = 10.0
DEFAULT_MAX_WORKERS = 16


def send_envelope(url: str, body: str, timeout: float = DEFAULT_TIMEOUT) -> requests.Response:
    """
    POST one envelope to Sentry.

    Raises:
        requests.RequestException: On connection errors or timeouts
    """
    return requests.post(
        url,
        data=body.encode("utf-8"),
        headers={"content-type": ENVELOPE_CONTENT_TYPE},
        timeout=timeout,
    )


def forward_record(record: Any, dsn: str, url: str, timeout: float = DEFAULT_TIMEOUT) -> bool:
    """
    Map, wrap and send a single record.

    Returns:
        True if Sentry answered (whatever the status), False on transport failure
    """
    event = map_datadog(record)
    body = build_envelope(dsn, event)
    try:
        response = send_envelope(url, body, timeout=timeout)
    except requests.RequestException as e:
        logger.error("Envelope delivery failed", extra={
            'error': str(e),
            'dd_service': event['tags']['service'],
            'event_level': event['level'],
        }, exc_info=True)
        return False

    if not response.ok:
        logger.warning("Sentry rejected envelope", extra={
            'status_code': response.status_code,
            'dd_service': event['tags']['service'],
            'response': response.text[:500],
        })
    else:
        logger.debug("Envelope delivered", extra={
            'status_code': response.status_code,
            'dd_service': event['tags']['service'],
        })
    return True


def forward_records(
    records: Iterable[Any],
    dsn: str,
    url: Optional[str] = None,
    timeout: float = DEFAULT_TIMEOUT,
    max_workers: int = DEFAULT_MAX_WORKERS,
) -> Tuple[int, int]:
    """
    Forward every record as its own Sentry event.

    Args:
        records: Decoded Datadog log records
        dsn: Sentry DSN
        url: Envelope endpoint; derived from the DSN when not given
        timeout: Per-request timeout in seconds
        max_workers: Upper bound on concurrent requests

    Returns:
        (forwarded, failed) counts

    Raises:
        ValueError: If no url is given and the DSN is invalid
    """
    if url is None:
        url = envelope_url_from_dsn(dsn)
    records = list(records)
    if not records:
        return 0, 0

    workers = max(1, min(max_workers, len(records)))
    with ThreadPoolExecutor(max_workers=workers) as pool:
        results = list(pool.map(lambda rec: forward_record(rec, dsn, url, timeout), records))

    forwarded = sum(1 for ok in results if ok)
    return forwarded, len(results) - forwarded

