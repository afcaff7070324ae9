"""
Pytest configuration — puts the services on sys.path and sets the relay's
environment before any test module imports the Flask app.
"""

import os
import sys

import pytest

# Make all service packages importable from the repo root
_REPO = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, os.path.join(_REPO, "services"))

TEST_DSN = "https://publickey@o4501.ingest.us.sentry.io/4505"

os.environ.setdefault("SENTRY_DSN", TEST_DSN)
os.environ.setdefault("RATE_LIMIT", "10000 per minute")


@pytest.fixture(autouse=True)
def _relay_config(monkeypatch):
    """Each test starts with a configured DSN, no API key and a fresh limiter."""
    import sentry_relay.app as relay

    monkeypatch.setattr(relay, "SENTRY_DSN", TEST_DSN)
    monkeypatch.setattr(relay, "API_KEY", "")
    relay.limiter.reset()
    yield
