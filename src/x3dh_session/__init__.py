"""
X3DH Session Library

Asynchronous X3DH key agreement: prekey bundles, the four-way Diffie-Hellman
handshake, and the single-key authenticated session that follows it.
"""

from .party import Party
from .store import InMemoryPrekeyStore
from .config import Curve, ProtocolConfig
from .models import (
    PrekeyBundle,
    DownloadedBundle,
    HandshakeMessage,
    MessageHeader,
    MessageEnvelope,
    Session,
    SessionState,
)
from .exceptions import (
    X3DHError,
    ValidationError,
    MissingKeyMaterial,
    UnknownPrekeyError,
    StorageError,
    CryptographyError,
    KeyMismatchError,
    VerificationError,
    BundleVerificationError,
    AuthenticationError,
)

__version__ = "0.1.0"
__all__ = [
    "Party",
    "InMemoryPrekeyStore",
    "Curve",
    "ProtocolConfig",
    "PrekeyBundle",
    "DownloadedBundle",
    "HandshakeMessage",
    "MessageHeader",
    "MessageEnvelope",
    "Session",
    "SessionState",
    "X3DHError",
    "ValidationError",
    "MissingKeyMaterial",
    "UnknownPrekeyError",
    "StorageError",
    "CryptographyError",
    "KeyMismatchError",
    "VerificationError",
    "BundleVerificationError",
    "AuthenticationError",
]
