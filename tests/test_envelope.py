"""
Unit tests for Sentry envelope construction.
"""

import json
import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "../services"))  # noqa: E402

from sentry_relay.envelope import build_envelope, envelope_url_from_dsn  # noqa: E402
from sentry_relay.normalizers import map_datadog  # noqa: E402

DSN = "https://publickey@o4501.ingest.us.sentry.io/4505"


class TestEnvelopeUrl:
    def test_standard_dsn(self):
        assert envelope_url_from_dsn(DSN) == "https://o4501.ingest.us.sentry.io/api/4505/envelope/"

    def test_dsn_with_port(self):
        assert envelope_url_from_dsn("http://key@localhost:9000/7") == "https://localhost:9000/api/7/envelope/"

    @pytest.mark.parametrize("dsn", ["", "not a dsn", "https://key@o1.ingest.sentry.io/"])
    def test_invalid_dsn(self, dsn):
        with pytest.raises(ValueError):
            envelope_url_from_dsn(dsn)


class TestBuildEnvelope:
    @pytest.fixture
    def event(self):
        return map_datadog({"message": "héllo order-12345", "service": "api", "date": 1700000000000})

    def test_three_lines(self, event):
        body = build_envelope(DSN, event)
        lines = body.split("\n")

        assert len(lines) == 4
        assert lines[-1] == ""

    def test_headers(self, event):
        header, item_header, payload = build_envelope(DSN, event).split("\n")[:3]
        header = json.loads(header)
        item_header = json.loads(item_header)

        assert header["dsn"] == DSN
        assert header["sdk"]["name"] == "dd-to-sentry-relay"
        assert header["sent_at"].endswith("Z")
        assert item_header["type"] == "event"
        assert item_header["content_type"] == "application/json"
        assert item_header["length"] == len(payload.encode("utf-8"))

    def test_payload_carries_event(self, event):
        header, _, payload = build_envelope(DSN, event).split("\n")[:3]
        header = json.loads(header)
        payload = json.loads(payload)

        assert payload["event_id"] == header["event_id"]
        assert len(payload["event_id"]) == 32
        int(payload["event_id"], 16)
        assert payload["message"] == "héllo order_<id>"
        assert payload["timestamp"] == "2023-11-14T22:13:20.000Z"
        assert payload["tags"]["service"] == "api"

    def test_fresh_event_id_per_envelope(self, event):
        first = json.loads(build_envelope(DSN, event).split("\n")[0])
        second = json.loads(build_envelope(DSN, event).split("\n")[0])
        assert first["event_id"] != second["event_id"]
