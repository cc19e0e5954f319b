"""
Shared fixtures for Entitlements engine tests.
"""

import pytest
from prometheus_client import CollectorRegistry

from service_entitlements.app.engine import EntitlementsEngine
from service_entitlements.app.models import (
    EntitlementDefinition, EntitlementType, EvaluationContext, Grant, GrantSource,
    Override, OverrideType
)
from shared.config import EngineConfig
from shared.metrics import EngineMetrics

NOW = 1_700_000_000_000


@pytest.fixture
def now():
    """Fixed evaluation instant (epoch millis)."""
    return NOW


@pytest.fixture
def definitions():
    """Create sample entitlement definitions."""
    return [
        EntitlementDefinition(
            id="seats:max",
            name="Maximum seats",
            type=EntitlementType.COUNT,
            default_value=5
        ),
        EntitlementDefinition(
            id="feature:sso",
            name="Single sign-on",
            type=EntitlementType.BOOLEAN,
            default_value=False
        ),
        EntitlementDefinition(
            id="api:calls",
            name="API calls per month",
            type=EntitlementType.USAGE,
            default_value=0,
            max_value=100_000
        ),
    ]


@pytest.fixture
def metrics():
    """Engine metrics on a private registry."""
    return EngineMetrics("entitlements", registry=CollectorRegistry())


@pytest.fixture
def engine(definitions, metrics):
    """Create EntitlementsEngine instance."""
    return EntitlementsEngine(definitions, config=EngineConfig(), metrics=metrics)


@pytest.fixture
def context(now):
    """Evaluation context for user-1 in tenant-1."""
    return EvaluationContext(
        subject_id="user-1",
        tenant_id="tenant-1",
        evaluation_time=now,
        group_ids=("group-a",)
    )


@pytest.fixture
def make_grant(now):
    """Factory for grants with sensible defaults."""
    def _make(
        grant_id="grant-1",
        entitlement_id="seats:max",
        source=GrantSource.PLAN,
        value=20,
        subject_id="user-1",
        tenant_id="tenant-1",
        valid_from=None,
        valid_until=None
    ):
        return Grant(
            id=grant_id,
            entitlement_id=entitlement_id,
            subject_id=subject_id,
            tenant_id=tenant_id,
            source=source,
            value=value,
            valid_from=now - 1000 if valid_from is None else valid_from,
            valid_until=valid_until
        )
    return _make


@pytest.fixture
def make_override(now):
    """Factory for overrides with sensible defaults."""
    def _make(
        override_id="override-1",
        entitlement_id="seats:max",
        override_type=OverrideType.INDIVIDUAL,
        value=100,
        subject_id="user-1",
        tenant_id="tenant-1",
        valid_from=None,
        valid_until=None,
        reason="support ticket"
    ):
        return Override(
            id=override_id,
            entitlement_id=entitlement_id,
            subject_id=subject_id,
            tenant_id=tenant_id,
            type=override_type,
            value=value,
            valid_from=now - 1000 if valid_from is None else valid_from,
            valid_until=valid_until,
            reason=reason
        )
    return _make
