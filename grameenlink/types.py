"""
Shared helpers for grameenlink.

Timestamp handling lives here so models, storage backends and the sync
client agree on one representation: timezone-aware UTC datetimes in memory,
ISO-8601 strings on the wire.
"""

import hashlib
import json
from datetime import datetime, timezone
from typing import Any, Optional


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(timezone.utc)


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse an ISO datetime string (or pass a datetime through).

    Naive datetimes are assumed to be UTC. Raises ValueError for strings
    that are not ISO-8601.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError as exc:
            raise ValueError(f"Invalid ISO datetime string: {value!r}") from exc
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def format_datetime(value: Optional[datetime]) -> Optional[str]:
    """Format a datetime for serialization."""
    return value.isoformat() if value else None


def content_digest(data: Any) -> str:
    """Stable digest of JSON-serializable data.

    Keys are sorted so two structurally equal payloads always produce the
    same digest regardless of dict ordering.
    """
    canonical = json.dumps(data, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
