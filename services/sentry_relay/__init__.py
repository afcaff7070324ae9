"""Datadog to Sentry log relay"""

__version__ = "1.0.0"
