"""
Entitlements engine package.

Resolves the effective value of named entitlements for a subject within
one tenant. It provides:

- app.models: Definitions, grants, overrides, contexts, results, snapshots.
- app.registry: Write-once definition registry.
- app.rules: Precedence evaluator and tenant isolation guard.
- app.snapshot: Snapshot checksum, generation and verification.
- app.engine: EntitlementsEngine orchestrating the above.

Guidelines:
- The engine is stateless apart from its registry; callers supply grants
  and overrides on every call.
- Keep evaluation deterministic and observable (metrics + logs).
"""
