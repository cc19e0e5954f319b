"""
Shared metrics configuration for the entitlements engine.
"""

from prometheus_client import Counter, Histogram, CollectorRegistry
from typing import Dict, Any, Optional
import time
from contextlib import contextmanager


class EngineMetrics:
    """Prometheus collectors for engine operations.

    Each instance owns its collectors. Pass a shared ``registry`` to export
    them; without one a private registry is created so that several engines
    can coexist in one process.
    """

    def __init__(self, service_name: str = "entitlements", registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry if registry is not None else CollectorRegistry()
        self._metrics: Dict[str, Any] = {}
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up entitlements engine metrics."""
        self._metrics["entitlement_evaluations_total"] = Counter(
            "entitlement_evaluations_total",
            "Total live entitlement evaluations",
            ["source", "granted"],
            registry=self.registry
        )

        self._metrics["entitlement_evaluation_duration_seconds"] = Histogram(
            "entitlement_evaluation_duration_seconds",
            "Entitlement evaluation duration in seconds",
            registry=self.registry
        )

        self._metrics["snapshot_operations_total"] = Counter(
            "snapshot_operations_total",
            "Total snapshot operations",
            ["operation", "outcome"],
            registry=self.registry
        )

        self._metrics["cross_tenant_rejections_total"] = Counter(
            "cross_tenant_rejections_total",
            "Total operations rejected for cross-tenant input",
            ["operation"],
            registry=self.registry
        )

    def record_evaluation(self, source: str, granted: bool):
        """Record a completed live evaluation."""
        self._metrics["entitlement_evaluations_total"].labels(
            source=source,
            granted=str(granted).lower()
        ).inc()

    def record_snapshot_operation(self, operation: str, outcome: str):
        """Record a snapshot generate/verify/lookup outcome."""
        self._metrics["snapshot_operations_total"].labels(
            operation=operation,
            outcome=outcome
        ).inc()

    def record_cross_tenant_rejection(self, operation: str):
        """Record a cross-tenant rejection."""
        self._metrics["cross_tenant_rejections_total"].labels(operation=operation).inc()

    @contextmanager
    def time_evaluation(self):
        """Context manager to time an evaluation."""
        start_time = time.perf_counter()
        try:
            yield
        finally:
            self._metrics["entitlement_evaluation_duration_seconds"].observe(
                time.perf_counter() - start_time
            )

    def sample(self, name: str, labels: Optional[Dict[str, str]] = None) -> float:
        """Read the current value of a sample from this collector's registry."""
        value = self.registry.get_sample_value(name, labels or {})
        return value or 0.0
