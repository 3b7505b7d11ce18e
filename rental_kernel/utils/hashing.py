"""
Deterministic hashing utilities.

Every checksum stored by the system (allocation audit hashes, configuration
checksums) goes through these functions so it can be reproduced from the
source rows alone.
"""

import hashlib
import json
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


def _json_serializer(obj: Any) -> Any:
    if isinstance(obj, Decimal):
        # Normalized so 300.00 and 300.000000000 hash identically
        return str(obj.normalize())
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, UUID):
        return str(obj)
    if isinstance(obj, Enum):
        return obj.value
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def canonicalize_json(data: dict | list | Any) -> str:
    """Sorted keys, no whitespace, stable rendering of Decimal/UUID/dates."""
    return json.dumps(
        data,
        sort_keys=True,
        separators=(",", ":"),
        default=_json_serializer,
    )


def sha256_hex(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def hash_payload(payload: dict) -> str:
    """SHA-256 over the canonical JSON form (64 hex characters)."""
    return sha256_hex(canonicalize_json(payload))


def hash_sorted_parts(parts: list[str], separator: str = "|") -> str:
    """Hash of strings sorted lexicographically, so input order never matters."""
    return sha256_hex(separator.join(sorted(parts)))
