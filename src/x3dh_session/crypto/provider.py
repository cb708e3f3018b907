"""Asymmetric key primitives behind an injectable crypto provider."""

import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import (
    decode_dss_signature,
    encode_dss_signature,
)
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat
import nacl.public
import nacl.signing
from nacl.bindings import crypto_scalarmult
from nacl.exceptions import CryptoError

from .aead import AES256GCM
from ..config import Curve
from ..exceptions import KeyMismatchError, ValidationError

logger = logging.getLogger(__name__)

RandomSource = Callable[[int], bytes]

# Order of the P-256 base point
P256_ORDER = 0xFFFFFFFF00000000FFFFFFFFFFFFFFFFBCE6FAADA7179E84F3B9CAC2FC632551


@dataclass(frozen=True)
class KeyPair:
    """Agreement key pair. The private half is opaque and never exported."""

    private: Any = field(repr=False)
    public_key: bytes


@dataclass(frozen=True)
class SigningKeyPair:
    """Signing key pair, kept separate from agreement keys."""

    signing_key: Any = field(repr=False)
    verify_key: bytes


class CryptoProvider(ABC):
    """
    Cryptographic capability handed to every component.

    Public keys travel as raw fixed-length encodings. The same encoding is
    signed, verified and fed into associated data.
    """

    curve: Curve
    public_key_size: int
    signature_size: int

    def __init__(self, random_bytes: Optional[RandomSource] = None):
        """
        Initialize provider.

        Args:
            random_bytes: Randomness source, os.urandom by default. Pass a
                seeded source for deterministic key generation and nonces.
        """
        self._random_bytes = random_bytes or os.urandom
        self.aead = AES256GCM(random_bytes=self.random_bytes)

    def random_bytes(self, size: int) -> bytes:
        data = self._random_bytes(size)
        if len(data) != size:
            raise ValidationError(f"Random source returned {len(data)} bytes, expected {size}")
        return data

    @abstractmethod
    def generate_keypair(self) -> KeyPair:
        """Generate a fresh agreement key pair."""

    @abstractmethod
    def dh(self, private: Any, peer_public_key: bytes) -> bytes:
        """
        Compute the raw shared secret for one agreement.

        Raises:
            KeyMismatchError: If peer_public_key is not on the configured curve
        """

    @abstractmethod
    def generate_signing_keypair(self) -> SigningKeyPair:
        """Generate a fresh signing key pair."""

    @abstractmethod
    def sign(self, signing_key: Any, data: bytes) -> bytes:
        """Sign data."""

    @abstractmethod
    def verify(self, verify_key: bytes, signature: bytes, data: bytes) -> bool:
        """Verify a signature. Returns False on any failure."""


class P256Provider(CryptoProvider):
    """ECDH and ECDSA/SHA-256 over NIST P-256, uncompressed point encoding."""

    curve = Curve.P256
    public_key_size = 65
    signature_size = 64

    def _generate_private(self) -> ec.EllipticCurvePrivateKey:
        # Rejection sampling keeps the scalar uniform in [1, n-1]
        while True:
            value = int.from_bytes(self.random_bytes(32), "big")
            if 0 < value < P256_ORDER:
                return ec.derive_private_key(value, ec.SECP256R1())

    @staticmethod
    def _encode(public_key: ec.EllipticCurvePublicKey) -> bytes:
        return public_key.public_bytes(Encoding.X962, PublicFormat.UncompressedPoint)

    @staticmethod
    def _decode(data: bytes) -> ec.EllipticCurvePublicKey:
        return ec.EllipticCurvePublicKey.from_encoded_point(ec.SECP256R1(), data)

    def generate_keypair(self) -> KeyPair:
        private = self._generate_private()
        return KeyPair(private=private, public_key=self._encode(private.public_key()))

    def dh(self, private: ec.EllipticCurvePrivateKey, peer_public_key: bytes) -> bytes:
        if len(peer_public_key) != self.public_key_size:
            raise KeyMismatchError(
                f"Peer public key must be a {self.public_key_size}-byte uncompressed point, "
                f"got {len(peer_public_key)} bytes"
            )
        try:
            peer = self._decode(peer_public_key)
        except (ValueError, TypeError) as e:
            raise KeyMismatchError(f"Peer public key is not a P-256 point: {e}")
        return private.exchange(ec.ECDH(), peer)

    def generate_signing_keypair(self) -> SigningKeyPair:
        private = self._generate_private()
        return SigningKeyPair(signing_key=private, verify_key=self._encode(private.public_key()))

    def sign(self, signing_key: ec.EllipticCurvePrivateKey, data: bytes) -> bytes:
        der = signing_key.sign(data, ec.ECDSA(hashes.SHA256()))
        r, s = decode_dss_signature(der)
        return r.to_bytes(32, "big") + s.to_bytes(32, "big")

    def verify(self, verify_key: bytes, signature: bytes, data: bytes) -> bool:
        if len(signature) != self.signature_size or len(verify_key) != self.public_key_size:
            return False

        r = int.from_bytes(signature[:32], "big")
        s = int.from_bytes(signature[32:], "big")
        try:
            public_key = self._decode(verify_key)
            public_key.verify(encode_dss_signature(r, s), data, ec.ECDSA(hashes.SHA256()))
            return True
        except (InvalidSignature, ValueError, TypeError):
            return False


class Curve25519Provider(CryptoProvider):
    """X25519 agreement and Ed25519 signatures with 32-byte raw keys."""

    curve = Curve.X25519
    public_key_size = 32
    signature_size = 64

    def generate_keypair(self) -> KeyPair:
        private = nacl.public.PrivateKey(self.random_bytes(32))
        return KeyPair(private=private, public_key=bytes(private.public_key))

    def dh(self, private: nacl.public.PrivateKey, peer_public_key: bytes) -> bytes:
        if len(peer_public_key) != self.public_key_size:
            raise KeyMismatchError(
                f"Peer public key must be {self.public_key_size} bytes, got {len(peer_public_key)}"
            )
        try:
            return crypto_scalarmult(bytes(private), peer_public_key)
        except CryptoError as e:
            # libsodium rejects low-order points
            raise KeyMismatchError(f"Peer public key rejected: {e}")

    def generate_signing_keypair(self) -> SigningKeyPair:
        signing_key = nacl.signing.SigningKey(self.random_bytes(32))
        return SigningKeyPair(signing_key=signing_key, verify_key=bytes(signing_key.verify_key))

    def sign(self, signing_key: nacl.signing.SigningKey, data: bytes) -> bytes:
        return signing_key.sign(data).signature

    def verify(self, verify_key: bytes, signature: bytes, data: bytes) -> bool:
        try:
            nacl.signing.VerifyKey(verify_key).verify(data, signature)
            return True
        except (CryptoError, ValueError, TypeError):
            return False


_PROVIDERS = {
    Curve.P256: P256Provider,
    Curve.X25519: Curve25519Provider,
}


def get_provider(curve: Curve = Curve.P256, random_bytes: Optional[RandomSource] = None) -> CryptoProvider:
    """
    Build the crypto provider for a named curve.

    Args:
        curve: Curve to use
        random_bytes: Optional randomness source

    Returns:
        CryptoProvider instance
    """
    try:
        provider_cls = _PROVIDERS[Curve(curve)]
    except (KeyError, ValueError):
        raise ValidationError(f"Unsupported curve: {curve}")

    logger.debug(f"Using {provider_cls.__name__} for curve {provider_cls.curve.value}")
    return provider_cls(random_bytes=random_bytes)
