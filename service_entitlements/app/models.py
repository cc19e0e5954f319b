"""
Entitlement data models for the Entitlements engine.

Wire-facing records (definitions, grants, overrides, contexts, results and
snapshots) are frozen pydantic models whose aliases are the camelCase field
names of the durable snapshot format. Internal value objects are plain
dataclasses.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Annotated, Any, Dict, Mapping, Optional, Tuple, Union

from pydantic import (
    BaseModel, BeforeValidator, ConfigDict, Field, StrictBool, StrictFloat, StrictInt,
    TypeAdapter, field_validator, model_validator
)
from pydantic.alias_generators import to_camel


EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def to_epoch_millis(value: Any) -> Any:
    """Accept timezone-aware datetimes wherever epoch millis are expected."""
    if isinstance(value, datetime):
        if value.utcoffset() is None:
            raise ValueError("datetime must be timezone-aware")
        return (value - EPOCH) // timedelta(milliseconds=1)
    return value


def to_instant_millis(value: Any) -> Any:
    """Like to_epoch_millis, also flooring finite float millis to an int.

    Flooring keeps every half-open comparison against an integer bound
    unchanged.
    """
    value = to_epoch_millis(value)
    if isinstance(value, float):
        if not math.isfinite(value):
            raise ValueError("instant must be finite")
        return math.floor(value)
    return value


EpochMillis = Annotated[StrictInt, BeforeValidator(to_epoch_millis)]
Instant = Annotated[StrictInt, BeforeValidator(to_instant_millis)]
instant_adapter = TypeAdapter(Instant)
Identifier = Annotated[str, Field(min_length=1)]
Number = Union[StrictInt, StrictFloat]
RawValue = Union[StrictBool, StrictInt, StrictFloat]


def _check_finite(value: Any) -> Any:
    if isinstance(value, float) and not math.isfinite(value):
        raise ValueError("numeric values must be finite")
    return value


class EntitlementType(str, Enum):
    """Entitlement definition types."""
    BOOLEAN = "boolean"
    COUNT = "count"
    USAGE = "usage"


class GrantSource(str, Enum):
    """Authoritative sources a grant can come from."""
    TENANT = "tenant"
    PLAN = "plan"
    PARTNER = "partner"
    SYSTEM = "system"


class OverrideType(str, Enum):
    """Override scopes."""
    INDIVIDUAL = "individual"
    GROUP = "group"


class EntitlementSource(str, Enum):
    """Where a resolved value came from.

    Closed set; ``rank`` is the single total order used for resolution.
    """
    OVERRIDE_INDIVIDUAL = "override:individual"
    OVERRIDE_GROUP = "override:group"
    GRANT_TENANT = "grant:tenant"
    GRANT_PLAN = "grant:plan"
    GRANT_PARTNER = "grant:partner"
    GRANT_SYSTEM = "grant:system"
    DEFAULT = "default"

    @property
    def rank(self) -> int:
        return _SOURCE_RANKS[self]

    @classmethod
    def for_grant(cls, source: GrantSource) -> "EntitlementSource":
        return cls("grant:" + source.value)

    @classmethod
    def for_override(cls, override_type: OverrideType) -> "EntitlementSource":
        return cls("override:" + override_type.value)


_SOURCE_RANKS: Dict[EntitlementSource, int] = {
    EntitlementSource.OVERRIDE_INDIVIDUAL: 6,
    EntitlementSource.OVERRIDE_GROUP: 5,
    EntitlementSource.GRANT_TENANT: 4,
    EntitlementSource.GRANT_PLAN: 3,
    EntitlementSource.GRANT_PARTNER: 2,
    EntitlementSource.GRANT_SYSTEM: 1,
    EntitlementSource.DEFAULT: 0,
}


class ValueKind(str, Enum):
    """Discriminant for EntitlementValue."""
    BOOLEAN = "boolean"
    NUMBER = "number"


@dataclass(frozen=True)
class EntitlementValue:
    """Boolean-or-numeric entitlement value with an explicit kind."""
    kind: ValueKind
    payload: Union[bool, int, float]

    @classmethod
    def of(cls, raw: Union[bool, int, float]) -> "EntitlementValue":
        # bool is checked first: it is a subclass of int
        if isinstance(raw, bool):
            return cls(ValueKind.BOOLEAN, raw)
        if isinstance(raw, (int, float)):
            return cls(ValueKind.NUMBER, raw)
        raise TypeError(f"Unsupported entitlement value: {raw!r}")

    @property
    def granted(self) -> bool:
        """True for a true flag or a positive quantity."""
        if self.kind is ValueKind.BOOLEAN:
            return bool(self.payload)
        if self.kind is ValueKind.NUMBER:
            return self.payload > 0
        raise ValueError(f"Unhandled value kind: {self.kind}")


class EngineModel(BaseModel):
    """Base for frozen, camelCase-aliased engine records."""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class WindowedModel(EngineModel):
    """Record with a half-open ``[valid_from, valid_until)`` window."""

    valid_from: EpochMillis
    valid_until: Optional[EpochMillis] = None

    @model_validator(mode="after")
    def check_window_order(self):
        if self.valid_until is not None and self.valid_until < self.valid_from:
            raise ValueError("validUntil must not precede validFrom")
        return self

    def is_active(self, at: int) -> bool:
        """Active iff valid_from <= at < valid_until (open-ended when unset)."""
        if at < self.valid_from:
            return False
        if self.valid_until is not None and at >= self.valid_until:
            return False
        return True


class EntitlementDefinition(EngineModel):
    """Definition of a named entitlement."""
    id: Identifier
    name: Identifier
    description: Optional[str] = None
    type: EntitlementType
    default_value: RawValue
    max_value: Optional[Number] = None

    @field_validator("default_value", "max_value")
    @classmethod
    def values_are_finite(cls, value: Any) -> Any:
        return _check_finite(value)

    @model_validator(mode="after")
    def check_default_matches_type(self):
        is_flag = isinstance(self.default_value, bool)
        if self.type == EntitlementType.BOOLEAN and not is_flag:
            raise ValueError("boolean entitlements need a boolean defaultValue")
        if self.type != EntitlementType.BOOLEAN and is_flag:
            raise ValueError(f"{self.type.value} entitlements need a numeric defaultValue")
        if self.max_value is not None:
            if self.type == EntitlementType.BOOLEAN:
                raise ValueError("maxValue is only meaningful for numeric entitlements")
            if self.default_value > self.max_value:
                raise ValueError("defaultValue exceeds maxValue")
        return self


class Grant(WindowedModel):
    """Assignment of an entitlement value from an authoritative source."""
    id: Identifier
    entitlement_id: Identifier
    subject_id: Identifier
    tenant_id: Identifier
    source: GrantSource
    value: RawValue
    metadata: Optional[Dict[str, str]] = None

    @field_validator("value")
    @classmethod
    def values_are_finite(cls, value: Any) -> Any:
        return _check_finite(value)


class Override(WindowedModel):
    """Manually authored exception scoped to one subject or one group."""
    id: Identifier
    entitlement_id: Identifier
    subject_id: Identifier
    tenant_id: Identifier
    type: OverrideType
    value: RawValue
    reason: Optional[str] = None

    @field_validator("value")
    @classmethod
    def values_are_finite(cls, value: Any) -> Any:
        return _check_finite(value)


class EvaluationContext(EngineModel):
    """Who is asking, for which tenant, and when."""
    subject_id: Identifier
    tenant_id: Identifier
    evaluation_time: EpochMillis
    group_ids: Tuple[str, ...] = ()

    @field_validator("group_ids", mode="before")
    @classmethod
    def none_means_no_groups(cls, value: Any) -> Any:
        return () if value is None else value


class EvaluationResult(EngineModel):
    """Resolved value of one entitlement."""
    entitlement_id: Identifier
    granted: bool
    value: RawValue
    source: EntitlementSource
    expires_at: Optional[EpochMillis] = None
    evaluated_at: EpochMillis


class EffectiveEntitlement(EngineModel):
    """Granted entitlement as recorded in a snapshot."""
    entitlement_id: Identifier
    value: RawValue
    source: EntitlementSource
    expires_at: Optional[EpochMillis] = None

    @field_validator("value")
    @classmethod
    def values_are_finite(cls, value: Any) -> Any:
        return _check_finite(value)


class Snapshot(EngineModel):
    """Checksum-protected record of a subject's effective entitlements."""
    id: Identifier
    subject_id: Identifier
    tenant_id: Identifier
    generated_at: EpochMillis
    expires_at: EpochMillis
    entitlements: Tuple[EffectiveEntitlement, ...] = ()
    checksum: Identifier

    def to_wire(self) -> Dict[str, Any]:
        """Durable camelCase record; absent optional expiries are omitted."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    @classmethod
    def from_wire(cls, data: Mapping[str, Any]) -> "Snapshot":
        return cls.model_validate(data)
