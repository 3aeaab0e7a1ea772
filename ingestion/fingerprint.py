"""
Content fingerprint for exact-duplicate detection of uploaded papers.
"""

import hashlib
from typing import Optional


def compute_fingerprint(data: Optional[bytes]) -> str:
    """
    SHA-256 hex digest (64 chars) of the exact byte sequence.

    Empty or missing input hashes as b"", so it still yields a stable digest.
    """
    return hashlib.sha256(data or b"").hexdigest()
