"""
Snapshot package.

- checksum: Canonical encoding, SHA-256 checksum and snapshot id.
- builder: Snapshot generation from live inputs and offline verification.
"""
