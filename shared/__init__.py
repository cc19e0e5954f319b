"""
Shared utilities for the entitlements engine.

This package aggregates common building blocks consumed by the service
package:

- config: Engine configuration via pydantic-settings
- logging: Structured logging with subject/tenant correlation
- metrics: Prometheus collectors for engine operations
- errors: Canonical error types and responses

Do not import from service_* packages into shared/.
"""
