"""
Tenant isolation guard for the Entitlements engine.
"""

from typing import Optional, Sequence

from shared.errors import CrossTenantAccessError
from shared.logging import get_logger
from shared.metrics import EngineMetrics
from ..models import EvaluationContext, Grant, Override


class TenantIsolationGuard:
    """Rejects any input that crosses the caller's tenant boundary.

    The first mismatching grant or override aborts the whole operation.
    Records are never filtered out silently.
    """

    def __init__(self, metrics: Optional[EngineMetrics] = None):
        self.logger = get_logger("entitlements.tenant_guard")
        self.metrics = metrics

    def check_inputs(
        self,
        context: EvaluationContext,
        grants: Sequence[Grant],
        overrides: Sequence[Override],
        operation: str = "evaluate"
    ) -> None:
        """Raise CrossTenantAccessError unless every record matches context.tenant_id."""
        for grant in grants:
            if grant.tenant_id != context.tenant_id:
                self._reject(context.tenant_id, grant.tenant_id, "grant", grant.id, operation)

        for override in overrides:
            if override.tenant_id != context.tenant_id:
                self._reject(context.tenant_id, override.tenant_id, "override", override.id, operation)

    def check_tenant(self, expected_tenant_id: str, actual_tenant_id: str, record_kind: str,
                     record_id: Optional[str] = None, operation: str = "evaluate_from_snapshot") -> None:
        """Raise CrossTenantAccessError if the two tenant ids differ."""
        if actual_tenant_id != expected_tenant_id:
            self._reject(expected_tenant_id, actual_tenant_id, record_kind, record_id, operation)

    def _reject(self, expected: str, actual: str, record_kind: str,
                record_id: Optional[str], operation: str) -> None:
        self.logger.warning(
            "Cross-tenant access rejected",
            operation=operation,
            expected_tenant_id=expected,
            actual_tenant_id=actual,
            record_kind=record_kind,
            record_id=record_id
        )
        if self.metrics is not None:
            self.metrics.record_cross_tenant_rejection(operation)
        raise CrossTenantAccessError(expected, actual, record_kind=record_kind, record_id=record_id)
