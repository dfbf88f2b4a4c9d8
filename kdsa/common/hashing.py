"""
Canonical Hashing.

Every hash in the engine (ledger links, input/output fingerprints,
determinism comparisons, trace IDs) goes through one canonical form:
JSON with sorted keys, compact separators, non-JSON values stringified.
Equal logical content therefore always hashes equally.
"""

import hashlib
import json
from enum import Enum
from typing import Any


def _to_plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if hasattr(value, "model_dump"):
        return value.model_dump(mode="json")
    if isinstance(value, (set, frozenset)):
        return sorted(_to_plain(v) for v in value)
    if isinstance(value, dict):
        return {str(_to_plain(k)): _to_plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_plain(v) for v in value]
    return value


def canonicalize(value: Any) -> str:
    """Serialize to the canonical JSON string."""
    return json.dumps(
        _to_plain(value),
        sort_keys=True,
        separators=(",", ":"),
        default=str,
        ensure_ascii=False,
    )


def sha256_hex(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def content_hash(value: Any) -> str:
    """SHA-256 of the canonical form of ``value``."""
    return sha256_hex(canonicalize(value))


def generate_trace_id(*parts: Any) -> str:
    """
    Deterministic trace ID from inputs.

    Same inputs always produce the same ID, so identical analyses can be
    correlated across ledger entries.

    Returns:
        Trace ID in format: trace_{hash[:24]}
    """
    return f"trace_{content_hash(list(parts))[:24]}"
