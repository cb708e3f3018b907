"""Cryptography utilities."""

import hashlib


def format_fingerprint(public_key: bytes) -> str:
    """
    Generate human-readable fingerprint from public key.

    Args:
        public_key: Encoded public key

    Returns:
        60-character hexadecimal fingerprint (SHA-256)
    """
    digest = hashlib.sha256(public_key).digest()
    # Take first 30 bytes for 60-char hex string
    return digest[:30].hex()


def concat(*parts: bytes) -> bytes:
    """Concatenate byte strings in order."""
    return b"".join(parts)
