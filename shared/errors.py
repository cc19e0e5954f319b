"""
Shared error handling for the entitlements engine.
"""

from typing import Dict, Any, Optional, List
from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Standard error response format."""

    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class AccessLayerException(Exception):
    """Base exception for entitlements engine errors."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            code=self.code,
            message=self.message,
            details=self.details
        )


class ValidationError(AccessLayerException):
    """Malformed input structure."""

    def __init__(
        self,
        message: str = "Validation failed",
        details: Optional[Dict[str, Any]] = None,
        errors: Optional[List[Dict[str, Any]]] = None
    ):
        details = dict(details or {})
        if errors is not None:
            details["errors"] = errors
        super().__init__("VALIDATION_ERROR", message, details)


class CrossTenantAccessError(AccessLayerException):
    """A grant, override or snapshot belongs to a tenant other than the caller's.

    Always fatal. ``expected_tenant_id`` and ``actual_tenant_id`` are kept
    on the exception for audit trails.
    """

    def __init__(
        self,
        expected_tenant_id: str,
        actual_tenant_id: str,
        record_kind: Optional[str] = None,
        record_id: Optional[str] = None
    ):
        self.expected_tenant_id = expected_tenant_id
        self.actual_tenant_id = actual_tenant_id
        self.record_kind = record_kind
        self.record_id = record_id

        details: Dict[str, Any] = {
            "expected_tenant_id": expected_tenant_id,
            "actual_tenant_id": actual_tenant_id,
        }
        if record_kind:
            details["record_kind"] = record_kind
        if record_id:
            details["record_id"] = record_id

        super().__init__(
            "CROSS_TENANT_ACCESS",
            f"Cross-tenant access: expected tenant '{expected_tenant_id}', got '{actual_tenant_id}'",
            details
        )


class UnknownEntitlementError(AccessLayerException):
    """Entitlement id is not present in the definition registry."""

    def __init__(self, entitlement_id: str):
        self.entitlement_id = entitlement_id
        super().__init__(
            "UNKNOWN_ENTITLEMENT",
            f"Unknown entitlement: {entitlement_id}",
            {"entitlement_id": entitlement_id}
        )
