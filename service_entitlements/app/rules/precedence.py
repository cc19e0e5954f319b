"""
Precedence evaluation for the Entitlements engine.

Sources are tried in descending rank:

    override:individual > override:group > grant:tenant > grant:plan
        > grant:partner > grant:system > default

The ranking is the ``PRECEDENCE`` tuple below rather than a chain of
conditionals, so each rank can be exercised on its own.
"""

from dataclasses import dataclass
from typing import Callable, Optional, Sequence, Tuple, Union

from ..models import (
    EntitlementSource, EntitlementValue, EvaluationContext, Grant, GrantSource,
    Override, OverrideType
)

Record = Union[Grant, Override]
Predicate = Callable[[Record, str, EvaluationContext], bool]


@dataclass(frozen=True)
class PrecedenceMatch:
    """Winning value for one entitlement."""
    value: EntitlementValue
    source: EntitlementSource
    expires_at: Optional[int] = None
    record_id: Optional[str] = None

    @property
    def granted(self) -> bool:
        return self.value.granted


@dataclass(frozen=True)
class SourceRank:
    """One rank of the precedence order.

    ``pool`` names the input collection searched ("overrides" or "grants");
    ``matches`` decides whether a record in that pool applies to the
    entitlement and context. Validity windows are checked separately.
    """
    source: EntitlementSource
    pool: str
    matches: Predicate

    @property
    def rank(self) -> int:
        return self.source.rank


def _individual_override(override: Override, entitlement_id: str, context: EvaluationContext) -> bool:
    return (
        override.type == OverrideType.INDIVIDUAL
        and override.entitlement_id == entitlement_id
        and override.subject_id == context.subject_id
        and override.tenant_id == context.tenant_id
    )


def _group_override(override: Override, entitlement_id: str, context: EvaluationContext) -> bool:
    # Group overrides carry the group id in subject_id
    return (
        override.type == OverrideType.GROUP
        and override.entitlement_id == entitlement_id
        and override.subject_id in context.group_ids
        and override.tenant_id == context.tenant_id
    )


def _grant_from(source: GrantSource) -> Predicate:
    def matches(grant: Grant, entitlement_id: str, context: EvaluationContext) -> bool:
        return (
            grant.source == source
            and grant.entitlement_id == entitlement_id
            and grant.subject_id == context.subject_id
            and grant.tenant_id == context.tenant_id
        )
    return matches


PRECEDENCE: Tuple[SourceRank, ...] = (
    SourceRank(EntitlementSource.OVERRIDE_INDIVIDUAL, "overrides", _individual_override),
    SourceRank(EntitlementSource.OVERRIDE_GROUP, "overrides", _group_override),
    SourceRank(EntitlementSource.GRANT_TENANT, "grants", _grant_from(GrantSource.TENANT)),
    SourceRank(EntitlementSource.GRANT_PLAN, "grants", _grant_from(GrantSource.PLAN)),
    SourceRank(EntitlementSource.GRANT_PARTNER, "grants", _grant_from(GrantSource.PARTNER)),
    SourceRank(EntitlementSource.GRANT_SYSTEM, "grants", _grant_from(GrantSource.SYSTEM)),
)


def match_rank(
    source_rank: SourceRank,
    entitlement_id: str,
    context: EvaluationContext,
    grants: Sequence[Grant],
    overrides: Sequence[Override]
) -> Optional[PrecedenceMatch]:
    """Run a single rank.

    Within a rank the first active match in input order wins. Neither
    recency nor magnitude is considered.
    """
    records = overrides if source_rank.pool == "overrides" else grants

    for record in records:
        if source_rank.matches(record, entitlement_id, context) and record.is_active(context.evaluation_time):
            return PrecedenceMatch(
                value=EntitlementValue.of(record.value),
                source=source_rank.source,
                expires_at=record.valid_until,
                record_id=record.id
            )

    return None


def evaluate_with_precedence(
    entitlement_id: str,
    context: EvaluationContext,
    grants: Sequence[Grant],
    overrides: Sequence[Override],
    default_value: Union[bool, int, float]
) -> PrecedenceMatch:
    """Resolve the winning value for one entitlement.

    Pure function of its arguments. Falls back to ``default_value`` with
    source ``default`` and no expiry when no rank matches.
    """
    for source_rank in PRECEDENCE:
        match = match_rank(source_rank, entitlement_id, context, grants, overrides)
        if match is not None:
            return match

    return PrecedenceMatch(
        value=EntitlementValue.of(default_value),
        source=EntitlementSource.DEFAULT
    )
