"""Cryptographic key management."""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import AsyncIterator, Dict, Optional

from .provider import CryptoProvider, KeyPair, SigningKeyPair
from .utils import format_fingerprint
from ..models import OneTimePrekey, PrekeyBundle
from ..exceptions import MissingKeyMaterial, UnknownPrekeyError, ValidationError

logger = logging.getLogger(__name__)


class KeyState(str, Enum):
    """Whether a key manager holds key material yet."""

    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"


@dataclass
class KeyMaterial:
    """Private key material of an initialized party, keyed by role."""

    identity: KeyPair
    signed_prekey: KeyPair
    signing: SigningKeyPair
    signed_prekey_signature: bytes
    one_time_prekeys: Dict[int, KeyPair] = field(default_factory=dict)


class KeyManager:
    """
    Manages a party's X3DH keys.

    Handles generation of:
    - Identity key pair (agreement curve)
    - Signing key pair, used to sign the signed prekey
    - Prekeys (signed + one-time)

    One-time prekeys are indexed by their generation position and removed once
    a responder handshake using them succeeds.
    """

    def __init__(
        self,
        provider: CryptoProvider,
        owner: str = "party",
        one_time_prekey_count: int = 1,
    ):
        """
        Initialize KeyManager.

        Args:
            provider: Crypto provider used for all key operations
            owner: Name used in log messages
            one_time_prekey_count: Number of one-time prekeys to generate
        """
        if one_time_prekey_count < 1:
            raise ValidationError("At least one one-time prekey is required")

        self.provider = provider
        self.owner = owner
        self.one_time_prekey_count = one_time_prekey_count

        self._material: Optional[KeyMaterial] = None
        self._prekey_lock = asyncio.Lock()

    @property
    def state(self) -> KeyState:
        return KeyState.INITIALIZED if self._material else KeyState.UNINITIALIZED

    @property
    def material(self) -> KeyMaterial:
        """
        Key material of the initialized state.

        Raises:
            MissingKeyMaterial: If keys have not been generated yet
        """
        if self._material is None:
            raise MissingKeyMaterial(f"Keys for {self.owner} not initialized")
        return self._material

    async def initialize(self) -> None:
        """Generate identity, signing and prekey material."""
        logger.info(f"Generating {self.provider.curve.value} key material for {self.owner}...")

        identity = self.provider.generate_keypair()
        signed_prekey = self.provider.generate_keypair()
        signing = self.provider.generate_signing_keypair()

        # Sign the prekey's raw public encoding
        signature = self.provider.sign(signing.signing_key, signed_prekey.public_key)

        one_time_prekeys = {
            key_id: self.provider.generate_keypair()
            for key_id in range(self.one_time_prekey_count)
        }

        self._material = KeyMaterial(
            identity=identity,
            signed_prekey=signed_prekey,
            signing=signing,
            signed_prekey_signature=signature,
            one_time_prekeys=one_time_prekeys,
        )

        logger.info(
            f"Generated identity key, signed prekey and "
            f"{len(one_time_prekeys)} one-time prekeys for {self.owner}"
        )

    def get_fingerprint(self) -> str:
        """
        Get fingerprint of identity public key.

        Returns:
            60-character hexadecimal fingerprint
        """
        return format_fingerprint(self.material.identity.public_key)

    def get_identity_keypair(self) -> KeyPair:
        return self.material.identity

    def get_signed_prekey(self) -> KeyPair:
        return self.material.signed_prekey

    def get_public_bundle(self) -> PrekeyBundle:
        """
        Get public prekey bundle for upload.

        Returns:
            PrekeyBundle with public keys only
        """
        material = self.material
        return PrekeyBundle(
            identity_key=material.identity.public_key,
            verify_key=material.signing.verify_key,
            signed_prekey=material.signed_prekey.public_key,
            signed_prekey_signature=material.signed_prekey_signature,
            one_time_prekeys=[
                OneTimePrekey(key_id=key_id, public_key=keypair.public_key)
                for key_id, keypair in sorted(material.one_time_prekeys.items())
            ],
        )

    def get_available_prekey_count(self) -> int:
        """
        Get count of available (unconsumed) one-time prekeys.
        """
        if self._material is None:
            return 0
        return len(self._material.one_time_prekeys)

    @asynccontextmanager
    async def reserve_prekey(self, key_id: int) -> AsyncIterator[KeyPair]:
        """
        Reserve a one-time prekey for a responder handshake.

        The prekey is consumed only if the block exits without an exception.
        The prekey lock is held throughout, so two handshakes can never both
        use the same prekey.

        Raises:
            UnknownPrekeyError: If key_id is unknown or already consumed
        """
        async with self._prekey_lock:
            prekeys = self.material.one_time_prekeys
            if key_id not in prekeys:
                raise UnknownPrekeyError(
                    f"One-time prekey {key_id} unknown or already consumed"
                )

            yield prekeys[key_id]

            del prekeys[key_id]
            logger.debug(f"Consumed prekey {key_id}, {len(prekeys)} remaining")
