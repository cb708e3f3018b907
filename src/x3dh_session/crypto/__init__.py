"""Cryptography module."""

from .provider import (
    CryptoProvider,
    P256Provider,
    Curve25519Provider,
    KeyPair,
    SigningKeyPair,
    get_provider,
)
from .aead import AES256GCM
from .kdf import derive
from .key_manager import KeyManager, KeyMaterial, KeyState
from .session_manager import SessionManager
from .x3dh import X3DHProtocol
from .utils import format_fingerprint, concat

__all__ = [
    "CryptoProvider",
    "P256Provider",
    "Curve25519Provider",
    "KeyPair",
    "SigningKeyPair",
    "get_provider",
    "AES256GCM",
    "derive",
    "KeyManager",
    "KeyMaterial",
    "KeyState",
    "SessionManager",
    "X3DHProtocol",
    "format_fingerprint",
    "concat",
]
