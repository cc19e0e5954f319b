"""
Rules package.

Resolution rules applied before and during entitlement evaluation:

- precedence: Ranked source table and the precedence evaluator.
- tenant_guard: Tenant isolation check run ahead of any evaluation.

Both are pure with respect to their inputs; nothing here performs I/O.
"""
