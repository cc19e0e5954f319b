"""
Entitlements evaluation engine.
"""

from .app.engine import EntitlementsEngine
from .app.models import (
    EffectiveEntitlement,
    EntitlementDefinition,
    EntitlementSource,
    EntitlementType,
    EntitlementValue,
    EvaluationContext,
    EvaluationResult,
    Grant,
    GrantSource,
    Override,
    OverrideType,
    Snapshot,
    ValueKind,
)

__all__ = [
    "EntitlementsEngine",
    "EffectiveEntitlement",
    "EntitlementDefinition",
    "EntitlementSource",
    "EntitlementType",
    "EntitlementValue",
    "EvaluationContext",
    "EvaluationResult",
    "Grant",
    "GrantSource",
    "Override",
    "OverrideType",
    "Snapshot",
    "ValueKind",
]
