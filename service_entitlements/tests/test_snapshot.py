"""
Unit tests for snapshot generation, checksums and verification.
"""

import json
import re
from hashlib import sha256

import pytest

from service_entitlements.app.models import (
    EffectiveEntitlement, EntitlementSource, GrantSource, OverrideType, Snapshot
)
from service_entitlements.app.registry import DefinitionRegistry
from service_entitlements.app.snapshot.builder import build_snapshot, verify_snapshot
from service_entitlements.app.snapshot.checksum import (
    canonical_payload, compute_checksum, snapshot_id
)

TTL = 3_600_000


@pytest.fixture
def grants(make_grant):
    """Grants making two of three definitions granted."""
    return [
        make_grant(grant_id="g-seats", source=GrantSource.PLAN, value=20),
        make_grant(grant_id="g-calls", entitlement_id="api:calls", source=GrantSource.SYSTEM, value=500),
    ]


@pytest.fixture
def overrides(make_override, now):
    """Override switching SSO on until a fixed time."""
    return [
        make_override(
            override_id="o-sso",
            entitlement_id="feature:sso",
            override_type=OverrideType.GROUP,
            subject_id="group-a",
            value=True,
            valid_until=now + 10_000
        )
    ]


@pytest.fixture
def snapshot(definitions, context, grants, overrides):
    """Generated snapshot."""
    return build_snapshot(DefinitionRegistry(definitions), context, grants, overrides, TTL)


class TestChecksum:
    """Test cases for canonical encoding and digests."""

    def test_canonical_payload(self):
        """Test the exact canonical text."""
        entitlements = [
            EffectiveEntitlement(entitlement_id="b", value=3, source="grant:plan", expires_at=1500),
            EffectiveEntitlement(entitlement_id="a", value=True, source="override:individual"),
        ]

        payload = canonical_payload("user-1", "tenant-1", 1000, 2000, entitlements)

        assert payload == (
            '{"subjectId":"user-1","tenantId":"tenant-1","generatedAt":1000,"expiresAt":2000,'
            '"entitlements":[{"entitlementId":"a","value":true,"source":"override:individual"},'
            '{"entitlementId":"b","value":3,"source":"grant:plan","expiresAt":1500}]}'
        )

    def test_checksum_is_sha256_hex(self):
        """Test the checksum is a 256-bit digest of the canonical payload."""
        entitlements = [EffectiveEntitlement(entitlement_id="a", value=1, source="grant:system")]

        checksum = compute_checksum("u", "t", 1, 2, entitlements)

        assert re.fullmatch(r"[0-9a-f]{64}", checksum)
        assert checksum == sha256(canonical_payload("u", "t", 1, 2, entitlements).encode("utf-8")).hexdigest()

    def test_order_independent(self):
        """Test entitlement order does not change the checksum."""
        a = EffectiveEntitlement(entitlement_id="a", value=1, source="grant:plan")
        b = EffectiveEntitlement(entitlement_id="b", value=2, source="grant:plan")

        assert compute_checksum("u", "t", 1, 2, [a, b]) == compute_checksum("u", "t", 1, 2, [b, a])

    def test_integral_float_matches_int(self):
        """Test 20.0 and 20 encode identically."""
        as_int = EffectiveEntitlement(entitlement_id="a", value=20, source="grant:plan")
        as_float = EffectiveEntitlement(entitlement_id="a", value=20.0, source="grant:plan")

        assert compute_checksum("u", "t", 1, 2, [as_int]) == compute_checksum("u", "t", 1, 2, [as_float])

    def test_snapshot_id(self):
        """Test ids depend on granted ids, not values or order."""
        first = snapshot_id("u", "t", 1, ["b", "a"])

        assert first == snapshot_id("u", "t", 1, ["a", "b"])
        assert first != snapshot_id("u", "t", 1, ["a"])
        assert first != snapshot_id("u", "t", 2, ["a", "b"])
        assert re.fullmatch(r"snap_[0-9a-f]{16}", first)
        assert snapshot_id("u", "t", 1, [], prefix="ent_").startswith("ent_")


class TestBuildSnapshot:
    """Test cases for snapshot generation."""

    def test_contents(self, snapshot, now):
        """Test granted entitlements are recorded, sorted by id."""
        assert snapshot.subject_id == "user-1"
        assert snapshot.tenant_id == "tenant-1"
        assert snapshot.generated_at == now
        assert snapshot.expires_at == now + TTL
        assert [e.entitlement_id for e in snapshot.entitlements] == ["api:calls", "feature:sso", "seats:max"]

        sso = snapshot.entitlements[1]
        assert sso.value is True
        assert sso.source is EntitlementSource.OVERRIDE_GROUP
        assert sso.expires_at == now + 10_000

    def test_defaults_not_recorded(self, definitions, context):
        """Test ungranted defaults are left out."""
        snapshot = build_snapshot(DefinitionRegistry(definitions), context, [], [], TTL)

        # seats:max defaults to 5, which counts as granted
        assert [e.entitlement_id for e in snapshot.entitlements] == ["seats:max"]
        assert snapshot.entitlements[0].source is EntitlementSource.DEFAULT

    def test_zero_value_not_recorded(self, definitions, context, make_grant):
        """Test a winning non-positive quantity is not granted."""
        grants = [make_grant(value=0, source=GrantSource.TENANT)]

        snapshot = build_snapshot(DefinitionRegistry(definitions), context, grants, [], TTL)

        assert "seats:max" not in [e.entitlement_id for e in snapshot.entitlements]

    def test_deterministic(self, definitions, context, grants, overrides, snapshot):
        """Test identical inputs give identical snapshots."""
        registry = DefinitionRegistry(definitions)

        for _ in range(5):
            again = build_snapshot(registry, context, grants, overrides, TTL)
            assert again == snapshot
            assert json.dumps(again.to_wire()) == json.dumps(snapshot.to_wire())

    def test_id_prefix(self, definitions, context):
        """Test custom id prefixes."""
        snapshot = build_snapshot(DefinitionRegistry(definitions), context, [], [], TTL, id_prefix="ent_")

        assert snapshot.id.startswith("ent_")


class TestVerifySnapshot:
    """Test cases for snapshot verification."""

    def test_round_trip(self, snapshot):
        """Test a fresh snapshot verifies."""
        assert verify_snapshot(snapshot) is True

    def test_wire_form(self, snapshot):
        """Test the serialized form verifies without the model."""
        wire = json.loads(json.dumps(snapshot.to_wire()))

        assert verify_snapshot(wire) is True

    @pytest.mark.parametrize("field,value", [
        ("subject_id", "user-2"),
        ("tenant_id", "tenant-2"),
        ("generated_at", 1),
        ("expires_at", 10 ** 15),
        ("checksum", "0" * 64),
        ("entitlements", ()),
    ])
    def test_tampered_header(self, snapshot, field, value):
        """Test changing any checksummed field breaks verification."""
        assert verify_snapshot(snapshot.model_copy(update={field: value})) is False

    @pytest.mark.parametrize("field,value", [
        ("value", 10_000),
        ("source", EntitlementSource.OVERRIDE_INDIVIDUAL),
        ("expires_at", 42),
        ("entitlement_id", "api:calls:v2"),
    ])
    def test_tampered_entitlement(self, snapshot, field, value):
        """Test changing any recorded entitlement breaks verification."""
        entitlements = list(snapshot.entitlements)
        entitlements[0] = entitlements[0].model_copy(update={field: value})

        assert verify_snapshot(snapshot.model_copy(update={"entitlements": tuple(entitlements)})) is False

    def test_tampered_wire(self, snapshot):
        """Test edits to the wire form are detected."""
        wire = snapshot.to_wire()
        wire["entitlements"][2]["value"] = 500

        assert verify_snapshot(wire) is False

    def test_id_not_checksummed(self, snapshot):
        """Test the id is a label and outside the checksum."""
        assert verify_snapshot(snapshot.model_copy(update={"id": "snap_other"})) is True

    @pytest.mark.parametrize("malformed", [
        None,
        42,
        "snapshot",
        {},
        {"id": "snap_1", "subjectId": "u"},
        {"id": "snap_1", "subjectId": "u", "tenantId": "t", "generatedAt": "soon",
         "expiresAt": 2, "entitlements": [], "checksum": "x"},
    ])
    def test_malformed_never_raises(self, malformed):
        """Test malformed input is reported invalid."""
        assert verify_snapshot(malformed) is False

    def test_non_string_checksum(self, snapshot):
        """Test a non-string checksum on a model instance is invalid."""
        assert verify_snapshot(snapshot.model_copy(update={"checksum": 123})) is False

    def test_independent_of_live_data(self, snapshot):
        """Test verification needs nothing but the snapshot."""
        restored = Snapshot.from_wire(snapshot.to_wire())

        assert verify_snapshot(restored) is True
