"""
Snapshot generation and verification for the Entitlements engine.
"""

import hmac
from typing import Any, Mapping, Optional, Sequence, Union

from pydantic import ValidationError as PydanticValidationError

from shared.logging import get_logger
from ..models import EffectiveEntitlement, EvaluationContext, Grant, Override, Snapshot
from ..registry import DefinitionRegistry
from ..rules.precedence import evaluate_with_precedence
from .checksum import compute_checksum, snapshot_checksum, snapshot_id

logger = get_logger("entitlements.snapshot")


def build_snapshot(
    registry: DefinitionRegistry,
    context: EvaluationContext,
    grants: Sequence[Grant],
    overrides: Sequence[Override],
    ttl_ms: int,
    id_prefix: str = "snap_"
) -> Snapshot:
    """Evaluate every registered definition and record the granted ones.

    Inputs must already have passed the tenant isolation guard. The
    resulting snapshot verifies without the grants and overrides that
    produced it.
    """
    entitlements = []
    for definition in registry:
        match = evaluate_with_precedence(
            definition.id,
            context,
            grants,
            overrides,
            definition.default_value
        )
        if match.granted:
            entitlements.append(EffectiveEntitlement(
                entitlement_id=definition.id,
                value=match.value.payload,
                source=match.source,
                expires_at=match.expires_at
            ))

    entitlements.sort(key=lambda e: e.entitlement_id)

    generated_at = context.evaluation_time
    expires_at = generated_at + ttl_ms

    return Snapshot(
        id=snapshot_id(
            context.subject_id,
            context.tenant_id,
            generated_at,
            [e.entitlement_id for e in entitlements],
            prefix=id_prefix
        ),
        subject_id=context.subject_id,
        tenant_id=context.tenant_id,
        generated_at=generated_at,
        expires_at=expires_at,
        entitlements=tuple(entitlements),
        checksum=compute_checksum(
            context.subject_id,
            context.tenant_id,
            generated_at,
            expires_at,
            entitlements
        )
    )


def parse_snapshot(snapshot: Union[Snapshot, Mapping[str, Any]]) -> Optional[Snapshot]:
    """Validate a snapshot into the model, or None when it is malformed."""
    if isinstance(snapshot, Snapshot):
        return snapshot
    try:
        return Snapshot.model_validate(snapshot)
    except PydanticValidationError as e:
        logger.warning("Snapshot failed structural validation", error=str(e))
        return None


def verify_snapshot(snapshot: Union[Snapshot, Mapping[str, Any]]) -> bool:
    """Check a snapshot's checksum against its own fields.

    Never raises: malformed or tampered input yields False.
    """
    parsed = parse_snapshot(snapshot)
    if parsed is None:
        return False

    try:
        if not isinstance(parsed.checksum, str):
            raise TypeError("checksum must be a string")
        expected = snapshot_checksum(parsed)
        valid = hmac.compare_digest(expected.encode("utf-8"), parsed.checksum.encode("utf-8"))
    except (TypeError, ValueError, AttributeError) as e:
        logger.warning("Snapshot failed structural validation", error=str(e))
        return False

    if not valid:
        logger.warning("Snapshot checksum mismatch", snapshot_id=parsed.id)
    return valid
