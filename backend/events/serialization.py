# events/serialization.py
"""
Canonical serialization for event payloads.

Identical payloads produce identical hashes regardless of dict ordering,
so the stored hash can be used to detect tampering with an event row.
"""

import hashlib
import json
from decimal import Decimal
from typing import Any, Dict


def _default(value):
    if isinstance(value, Decimal):
        return str(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def canonical_json(data: Dict[str, Any]) -> str:
    """
    Deterministic JSON: sorted keys, no whitespace, unicode preserved.

    >>> canonical_json({"b": 2, "a": 1})
    '{"a":1,"b":2}'
    """
    return json.dumps(
        data,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=_default,
    )


def compute_payload_hash(data: Dict[str, Any]) -> str:
    """SHA-256 hex digest of the canonical JSON representation."""
    return hashlib.sha256(canonical_json(data).encode("utf-8")).hexdigest()
