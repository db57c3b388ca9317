"""
Content hashing for applied migrations.

The hash stored with each AppliedRecord is a SHA-256 digest of the SQL
payload exactly as it was sent to the database. It is written once for
audit and tamper-evidence; nothing re-hashes applied units on later runs.

Examples:
    >>> len(compute_content_hash("CREATE TABLE t (id int);"))
    64

Tags:
    hashing, audit, track-migrate
"""

import hashlib


def compute_content_hash(payload: str | bytes) -> str:
    """
    Compute the SHA-256 hex digest of a migration payload.

    Strings are encoded as UTF-8 first, so ``compute_content_hash(text)``
    and ``compute_content_hash(text.encode())`` agree.

    Args:
        payload: SQL text or raw bytes

    Returns:
        64-character lowercase hex string
    """
    if isinstance(payload, str):
        payload = payload.encode("utf-8")
    return hashlib.sha256(payload).hexdigest()

