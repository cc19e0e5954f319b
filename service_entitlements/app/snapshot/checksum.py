"""
Canonical encoding and SHA-256 digests for entitlement snapshots.

The checksum covers, in this fixed key order::

    {"subjectId", "tenantId", "generatedAt", "expiresAt",
     "entitlements": [{"entitlementId", "value", "source"[, "expiresAt"]}]}

serialized as compact ASCII JSON with entitlements sorted by id (code point
order). An absent entitlement expiry is omitted, and integral floats are
written as integers so that ``20`` and ``20.0`` encode identically.
"""

import json
from enum import Enum
from hashlib import sha256
from typing import Any, Dict, Iterable, List

from ..models import EffectiveEntitlement, Snapshot

SNAPSHOT_ID_DIGEST_CHARS = 16


def _canonical_value(value: Any) -> Any:
    if isinstance(value, bool):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def _canonical_source(source: Any) -> str:
    if isinstance(source, Enum):
        return source.value
    return str(source)


def _canonical_json(payload: Dict[str, Any]) -> str:
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=True, allow_nan=False)


def canonical_entitlements(entitlements: Iterable[EffectiveEntitlement]) -> List[Dict[str, Any]]:
    """Entitlements as ordered dicts, sorted ascending by id."""
    encoded = []
    for entitlement in sorted(entitlements, key=lambda e: e.entitlement_id):
        entry = {
            "entitlementId": entitlement.entitlement_id,
            "value": _canonical_value(entitlement.value),
            "source": _canonical_source(entitlement.source),
        }
        if entitlement.expires_at is not None:
            entry["expiresAt"] = entitlement.expires_at
        encoded.append(entry)
    return encoded


def canonical_payload(
    subject_id: str,
    tenant_id: str,
    generated_at: int,
    expires_at: int,
    entitlements: Iterable[EffectiveEntitlement]
) -> str:
    """Canonical JSON text the checksum is computed over."""
    return _canonical_json({
        "subjectId": subject_id,
        "tenantId": tenant_id,
        "generatedAt": generated_at,
        "expiresAt": expires_at,
        "entitlements": canonical_entitlements(entitlements),
    })


def compute_checksum(
    subject_id: str,
    tenant_id: str,
    generated_at: int,
    expires_at: int,
    entitlements: Iterable[EffectiveEntitlement]
) -> str:
    """64-character hex SHA-256 of the canonical payload."""
    payload = canonical_payload(subject_id, tenant_id, generated_at, expires_at, entitlements)
    return sha256(payload.encode("utf-8")).hexdigest()


def snapshot_checksum(snapshot: Snapshot) -> str:
    """Recompute a snapshot's checksum from its own declared fields."""
    return compute_checksum(
        snapshot.subject_id,
        snapshot.tenant_id,
        snapshot.generated_at,
        snapshot.expires_at,
        snapshot.entitlements
    )


def snapshot_id(
    subject_id: str,
    tenant_id: str,
    generated_at: int,
    entitlement_ids: Iterable[str],
    prefix: str = "snap_"
) -> str:
    """Deterministic snapshot id derived from subject, tenant, time and granted ids."""
    payload = _canonical_json({
        "subjectId": subject_id,
        "tenantId": tenant_id,
        "generatedAt": generated_at,
        "entitlements": sorted(entitlement_ids),
    })
    return prefix + sha256(payload.encode("utf-8")).hexdigest()[:SNAPSHOT_ID_DIGEST_CHARS]
