"""
Helper Functions
================

Common utility functions used across the application.
"""

import base64
import binascii
import json
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Optional

# Returns seconds since the epoch; injected wherever eviction or
# timestamps must be testable.
Clock = Callable[[], float]


def system_clock() -> float:
    """Wall-clock time in seconds since the epoch."""
    return time.time()


def generate_viewer_id() -> str:
    """Generate a new viewer identifier."""
    return str(uuid.uuid4())


def from_timestamp(ts: float) -> datetime:
    """Convert an epoch timestamp to an aware UTC datetime."""
    return datetime.fromtimestamp(ts, tz=timezone.utc)


def decode_base64_json(value: str) -> Optional[dict[str, Any]]:
    """
    Decode a base64-encoded JSON object.

    Returns ``None`` when the value is not valid base64, not valid JSON,
    or does not decode to a JSON object.
    """
    try:
        raw = base64.b64decode(value, validate=True)
        data = json.loads(raw.decode("utf-8"))
    except (binascii.Error, ValueError):
        return None
    if not isinstance(data, dict):
        return None
    return data


def stream_url(base_url: str, path: str) -> str:
    """Join the public base URL (possibly empty) with an API path."""
    return f"{base_url.rstrip('/')}{path}"
