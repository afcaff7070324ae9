"""
Normalizer package.
Turns Datadog log records into Sentry events with grouping-friendly messages.
"""

from .message import normalize_message
from .datadog import map_datadog, map_level, normalize_env, to_iso

__all__ = ["normalize_message", "map_datadog", "map_level", "normalize_env", "to_iso"]
