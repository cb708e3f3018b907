"""Custom exceptions for the X3DH session library."""


class X3DHError(Exception):
    """Base exception for all library errors."""

    pass


class ValidationError(X3DHError):
    """Input validation error."""

    pass


class MissingKeyMaterial(X3DHError):
    """Operation invoked before the required keys exist."""

    pass


class UnknownPrekeyError(X3DHError):
    """One-time prekey id is out of range or already consumed."""

    pass


class StorageError(X3DHError):
    """Prekey store operation failed."""

    pass


class CryptographyError(X3DHError):
    """Cryptographic operation failed."""

    pass


class KeyMismatchError(CryptographyError):
    """Peer public key is not a valid key on the configured curve."""

    pass


class VerificationError(CryptographyError):
    """Signature verification failed."""

    pass


class BundleVerificationError(VerificationError):
    """Signed prekey signature in a prekey bundle did not verify."""

    pass


class AuthenticationError(CryptographyError):
    """AEAD tag, associated data or nonce did not match."""

    pass
