# src/cache/fingerprint.py — v3
"""Request fingerprinting.

The fingerprint is a SHA-256 over the canonical JSON of the semantically
relevant request fields: keys sorted, compact separators, volatile fields
(timestamps, request ids, cosmetic profile metadata) excluded. Requests that
differ only in volatile fields or in key order share a fingerprint.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any

from neuroadapt.cache.models import Fingerprint
from neuroadapt.core.models import AdaptationRequest

# Bump when the request schema or the exclusion set changes.
FINGERPRINT_VERSION = "1"

VOLATILE_FIELDS: dict[str, Any] = {
    "request_id": True,
    "issued_at": True,
    "profile": {"display_name", "avatar_color", "created_at", "updated_at"},
    "assignment": {"parsed_at"},
    "context": {"collected_at"},
}


def compute_fingerprint(request: AdaptationRequest) -> Fingerprint:
    """Compute the cache key of a request.

    Pure and deterministic.

    Args:
        request: Adaptation request.

    Returns:
        Fingerprint with a 64-char hex digest.
    """
    data = request.model_dump(mode="json", exclude=VOLATILE_FIELDS)
    return Fingerprint(digest=_digest(data), version=FINGERPRINT_VERSION)


def canonical_json(data: Any) -> str:
    """Serialise with sorted keys and no insignificant whitespace."""
    return json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _digest(data: Any) -> str:
    payload = f"{FINGERPRINT_VERSION}:{canonical_json(data)}"
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()
