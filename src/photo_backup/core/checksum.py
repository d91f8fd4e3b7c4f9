"""Content checksum used as the identity key for deduplication."""

import hashlib


def compute_checksum(data: bytes) -> str:
    """Return the lowercase hex SHA-256 digest of *data*.

    The raw bytes are hashed as-is; client and server must agree on
    this exactly, so no normalisation is applied.
    """
    return hashlib.sha256(data).hexdigest()
