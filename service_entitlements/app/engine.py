"""
Entitlements engine.

Composes the definition registry, tenant isolation guard, precedence
evaluator and snapshot builder behind four operations:

- evaluate_entitlement: live resolution of one entitlement.
- generate_snapshot: checksum-protected record of every granted entitlement.
- verify_snapshot: offline integrity check, never raises.
- evaluate_from_snapshot: resolution from a snapshot without live data.

Unknown entitlement ids are handled differently by the two evaluation
paths. ``evaluate_entitlement`` raises UnknownEntitlementError, while
``evaluate_from_snapshot`` returns None, the same soft outcome it uses for
tampered or expired snapshots.
"""

from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError as PydanticValidationError

from shared.config import EngineConfig, get_engine_config
from shared.errors import UnknownEntitlementError, ValidationError
from shared.logging import get_logger, subject_context
from shared.metrics import EngineMetrics
from .models import (
    EntitlementDefinition, EntitlementSource, EvaluationContext, EvaluationResult,
    Grant, Override, Snapshot, instant_adapter
)
from .registry import DefinitionRegistry
from .rules.precedence import evaluate_with_precedence
from .rules.tenant_guard import TenantIsolationGuard
from .snapshot.builder import build_snapshot, parse_snapshot, verify_snapshot

ModelT = TypeVar("ModelT", bound=BaseModel)
SnapshotInput = Union[Snapshot, Mapping[str, Any]]


def _coerce(model: Type[ModelT], value: Any, label: str) -> ModelT:
    """Validate one input into ``model``, raising the engine's ValidationError."""
    if isinstance(value, model):
        return value
    try:
        return model.model_validate(value)
    except PydanticValidationError as e:
        raise ValidationError(
            f"Invalid {label}",
            errors=e.errors(include_url=False, include_context=False, include_input=False)
        ) from e


def _coerce_instant(value: Any, label: str) -> int:
    """Validate a point in time into epoch millis, raising the engine's ValidationError."""
    try:
        return instant_adapter.validate_python(value)
    except PydanticValidationError as e:
        raise ValidationError(
            f"Invalid {label}",
            errors=e.errors(include_url=False, include_context=False, include_input=False)
        ) from e


def _coerce_all(model: Type[ModelT], values: Optional[Iterable[Any]], label: str) -> List[ModelT]:
    if values is None or isinstance(values, (str, bytes, Mapping)):
        raise ValidationError(f"{label} must be a sequence")
    return [_coerce(model, value, label) for value in values]


class EntitlementsEngine:
    """Entitlement evaluation engine.

    Every operation is a pure function of its arguments and the registry.
    Grants and overrides are supplied per call and never retained.
    """

    def __init__(
        self,
        definitions: Iterable[Union[EntitlementDefinition, Mapping[str, Any]]],
        config: Optional[EngineConfig] = None,
        snapshot_ttl_ms: Optional[int] = None,
        metrics: Optional[EngineMetrics] = None
    ):
        self.logger = get_logger("entitlements.engine")
        self.config = config or get_engine_config()

        ttl = snapshot_ttl_ms if snapshot_ttl_ms is not None else self.config.snapshot_ttl_ms
        if isinstance(ttl, bool) or not isinstance(ttl, int) or ttl <= 0:
            raise ValidationError("snapshot_ttl_ms must be a positive integer", {"snapshot_ttl_ms": ttl})
        self.snapshot_ttl_ms = ttl

        self.metrics = metrics or EngineMetrics("entitlements")
        self.guard = TenantIsolationGuard(self.metrics)
        self.registry = DefinitionRegistry(_coerce_all(EntitlementDefinition, definitions, "definition"))

    def reload_definitions(self, definitions: Iterable[Union[EntitlementDefinition, Mapping[str, Any]]]) -> None:
        """Replace the registry wholesale.

        In-flight calls keep the registry they started with.
        """
        registry = DefinitionRegistry(_coerce_all(EntitlementDefinition, definitions, "definition"))
        self.registry = registry
        self.logger.info("Definitions reloaded", definitions=len(registry))

    def _validate_inputs(
        self,
        context: Any,
        grants: Iterable[Any],
        overrides: Iterable[Any]
    ) -> Tuple[EvaluationContext, List[Grant], List[Override]]:
        return (
            _coerce(EvaluationContext, context, "context"),
            _coerce_all(Grant, grants, "grant"),
            _coerce_all(Override, overrides, "override"),
        )

    def evaluate_entitlement(
        self,
        entitlement_id: str,
        context: Union[EvaluationContext, Mapping[str, Any]],
        grants: Sequence[Union[Grant, Mapping[str, Any]]],
        overrides: Sequence[Union[Override, Mapping[str, Any]]]
    ) -> EvaluationResult:
        """Resolve one entitlement from live grants and overrides.

        Raises:
            ValidationError: malformed context, grant or override.
            CrossTenantAccessError: any record outside context.tenant_id.
            UnknownEntitlementError: entitlement_id is not registered.
        """
        context, grants, overrides = self._validate_inputs(context, grants, overrides)
        registry = self.registry

        with subject_context(context.subject_id, context.tenant_id), self.metrics.time_evaluation():
            self.guard.check_inputs(context, grants, overrides, operation="evaluate")

            try:
                definition = registry.require(entitlement_id)
            except UnknownEntitlementError:
                self.logger.warning("Unknown entitlement requested", entitlement_id=entitlement_id)
                raise

            match = evaluate_with_precedence(
                entitlement_id,
                context,
                grants,
                overrides,
                definition.default_value
            )

            result = EvaluationResult(
                entitlement_id=entitlement_id,
                granted=match.granted,
                value=match.value.payload,
                source=match.source,
                expires_at=match.expires_at,
                evaluated_at=context.evaluation_time
            )

            self.logger.debug(
                "Entitlement evaluated",
                entitlement_id=entitlement_id,
                source=result.source.value,
                granted=result.granted,
                record_id=match.record_id
            )

        self.metrics.record_evaluation(result.source.value, result.granted)
        return result

    def generate_snapshot(
        self,
        context: Union[EvaluationContext, Mapping[str, Any]],
        grants: Sequence[Union[Grant, Mapping[str, Any]]],
        overrides: Sequence[Union[Override, Mapping[str, Any]]]
    ) -> Snapshot:
        """Snapshot every entitlement currently granted to the context's subject.

        Raises:
            ValidationError: malformed context, grant or override.
            CrossTenantAccessError: any record outside context.tenant_id.
        """
        context, grants, overrides = self._validate_inputs(context, grants, overrides)
        registry = self.registry

        with subject_context(context.subject_id, context.tenant_id):
            self.guard.check_inputs(context, grants, overrides, operation="generate_snapshot")

            snapshot = build_snapshot(
                registry,
                context,
                grants,
                overrides,
                self.snapshot_ttl_ms,
                id_prefix=self.config.snapshot_id_prefix
            )

            self.logger.info(
                "Snapshot generated",
                snapshot_id=snapshot.id,
                entitlements=len(snapshot.entitlements),
                expires_at=snapshot.expires_at
            )

        self.metrics.record_snapshot_operation("generate", "success")
        return snapshot

    def verify_snapshot(self, snapshot: SnapshotInput) -> bool:
        """True iff the snapshot is well formed and its checksum matches. Never raises."""
        valid = verify_snapshot(snapshot)
        self.metrics.record_snapshot_operation("verify", "valid" if valid else "invalid")
        return valid

    def evaluate_from_snapshot(
        self,
        entitlement_id: str,
        snapshot: SnapshotInput,
        current_time: Any,
        expected_tenant_id: str
    ) -> Optional[EvaluationResult]:
        """Resolve one entitlement from a snapshot alone.

        ``current_time`` is epoch millis as an int, a float (floored to
        whole millis) or a timezone-aware datetime.

        Returns None when the snapshot fails verification, has expired at
        ``current_time``, or ``entitlement_id`` is not registered. A
        registered entitlement missing from the snapshot resolves to its
        default with ``granted=False``.

        Raises:
            ValidationError: current_time is not one of the accepted forms.
            CrossTenantAccessError: snapshot.tenant_id differs from expected_tenant_id.
        """
        now = _coerce_instant(current_time, "current_time")

        snapshot = parse_snapshot(snapshot)
        if snapshot is None or not self.verify_snapshot(snapshot):
            self.metrics.record_snapshot_operation("lookup", "invalid")
            return None

        self.guard.check_tenant(
            expected_tenant_id,
            snapshot.tenant_id,
            "snapshot",
            snapshot.id,
            operation="evaluate_from_snapshot"
        )

        if now >= snapshot.expires_at:
            self.logger.debug("Snapshot expired", snapshot_id=snapshot.id, expires_at=snapshot.expires_at)
            self.metrics.record_snapshot_operation("lookup", "expired")
            return None

        for effective in snapshot.entitlements:
            if effective.entitlement_id == entitlement_id:
                self.metrics.record_snapshot_operation("lookup", "granted")
                return EvaluationResult(
                    entitlement_id=entitlement_id,
                    granted=True,
                    value=effective.value,
                    source=effective.source,
                    expires_at=effective.expires_at if effective.expires_at is not None else snapshot.expires_at,
                    evaluated_at=now
                )

        definition = self.registry.get(entitlement_id)
        if definition is None:
            self.logger.debug("Unknown entitlement in snapshot lookup", entitlement_id=entitlement_id)
            self.metrics.record_snapshot_operation("lookup", "unknown")
            return None

        self.metrics.record_snapshot_operation("lookup", "default")
        return EvaluationResult(
            entitlement_id=entitlement_id,
            granted=False,
            value=definition.default_value,
            source=EntitlementSource.DEFAULT,
            expires_at=snapshot.expires_at,
            evaluated_at=now
        )
