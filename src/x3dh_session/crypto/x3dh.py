"""X3DH (Extended Triple Diffie-Hellman) Protocol Implementation."""

import asyncio
import logging
from typing import Any, List, Tuple

from .kdf import DEFAULT_INFO_PREFIX, derive
from .provider import CryptoProvider, KeyPair
from .utils import concat, format_fingerprint
from ..models import DownloadedBundle, HandshakeMessage, PrekeyBundle, Session, SessionRole
from ..exceptions import BundleVerificationError

logger = logging.getLogger(__name__)

# HKDF purpose index of the session key
SESSION_KEY_PURPOSE = 0


class X3DHProtocol:
    """
    Implements the X3DH key agreement protocol for session establishment.

    X3DH performs four Diffie-Hellman operations to establish a shared secret:
    - DH1: DH(IKa, SPKb) - Identity key A with signed prekey B
    - DH2: DH(EKa, IKb) - Ephemeral key A with identity key B
    - DH3: DH(EKa, SPKb) - Ephemeral key A with signed prekey B
    - DH4: DH(EKa, OPKb) - Ephemeral key A with one-time prekey B

    The order of the terms is part of the derivation input. The session key is
    derived with HKDF-SHA256 and the associated data is IKa || IKb on both
    sides.

    Bundles without a one-time prekey are not supported: DH4 is always
    computed.
    """

    def __init__(self, provider: CryptoProvider, info_prefix: str = DEFAULT_INFO_PREFIX):
        """
        Args:
            provider: Crypto provider for DH, signatures and AEAD
            info_prefix: HKDF info prefix shared by both parties
        """
        self.provider = provider
        self.info_prefix = info_prefix

    def verify_bundle(self, bundle: DownloadedBundle | PrekeyBundle) -> None:
        """
        Verify the signed prekey signature of a bundle.

        Raises:
            BundleVerificationError: If the signature does not verify
        """
        if not self.provider.verify(
            bundle.verify_key,
            bundle.signed_prekey_signature,
            bundle.signed_prekey,
        ):
            raise BundleVerificationError("Invalid signed prekey signature")

    async def _dh(self, private: Any, peer_public_key: bytes) -> bytes:
        return self.provider.dh(private, peer_public_key)

    async def _agree(self, *pairs: Tuple[Any, bytes]) -> bytes:
        # The terms are independent; derivation waits for all of them
        results: List[bytes] = await asyncio.gather(
            *(self._dh(private, public) for private, public in pairs)
        )
        return derive(concat(*results), SESSION_KEY_PURPOSE, self.info_prefix)

    @staticmethod
    def associated_data(initiator_identity_key: bytes, responder_identity_key: bytes) -> bytes:
        """Build AD = Encode(IKa) || Encode(IKb)."""
        return concat(initiator_identity_key, responder_identity_key)

    async def initiate_session(
        self,
        identity: KeyPair,
        bundle: DownloadedBundle,
        initial_message: str,
    ) -> Tuple[Session, HandshakeMessage]:
        """
        Run X3DH as the initiator (Alice).

        Args:
            identity: Alice's identity key pair
            bundle: Bob's downloaded prekey bundle
            initial_message: Plaintext embedded in the handshake message

        Returns:
            Tuple of (session, handshake message to send)

        Raises:
            BundleVerificationError: If the bundle signature is invalid
            KeyMismatchError: If a bundle key is not on the configured curve
        """
        self.verify_bundle(bundle)

        ephemeral = self.provider.generate_keypair()

        session_key = await self._agree(
            (identity.private, bundle.signed_prekey),
            (ephemeral.private, bundle.identity_key),
            (ephemeral.private, bundle.signed_prekey),
            (ephemeral.private, bundle.one_time_prekey),
        )
        associated_data = self.associated_data(identity.public_key, bundle.identity_key)

        ciphertext, nonce = self.provider.aead.encrypt_message(
            session_key, initial_message, associated_data
        )

        session = Session(
            peer_id=format_fingerprint(bundle.identity_key),
            peer_identity_key=bundle.identity_key,
            role=SessionRole.INITIATOR,
            session_key=session_key,
            associated_data=associated_data,
        )
        message = HandshakeMessage(
            identity_key=identity.public_key,
            ephemeral_key=ephemeral.public_key,
            one_time_prekey_id=bundle.one_time_prekey_id,
            ciphertext=ciphertext,
            nonce=nonce,
        )

        logger.debug(f"X3DH initiator derived session with {session.peer_id}")
        return session, message

    async def respond_session(
        self,
        identity: KeyPair,
        signed_prekey: KeyPair,
        one_time_prekey: KeyPair,
        message: HandshakeMessage,
    ) -> Tuple[Session, str]:
        """
        Run X3DH as the responder (Bob).

        Args:
            identity: Bob's identity key pair
            signed_prekey: Bob's signed prekey pair
            one_time_prekey: The one-time prekey pair named by the message
            message: Handshake message received from Alice

        Returns:
            Tuple of (session, decrypted initial message)

        Raises:
            KeyMismatchError: If a message key is not on the configured curve
            AuthenticationError: If the initial message fails to decrypt
        """
        session_key = await self._agree(
            (signed_prekey.private, message.identity_key),
            (identity.private, message.ephemeral_key),
            (signed_prekey.private, message.ephemeral_key),
            (one_time_prekey.private, message.ephemeral_key),
        )
        associated_data = self.associated_data(message.identity_key, identity.public_key)

        plaintext = self.provider.aead.decrypt_message(
            session_key, message.ciphertext, associated_data, message.nonce
        )

        session = Session(
            peer_id=format_fingerprint(message.identity_key),
            peer_identity_key=message.identity_key,
            role=SessionRole.RESPONDER,
            session_key=session_key,
            associated_data=associated_data,
        )

        logger.debug(f"X3DH responder derived session with {session.peer_id}")
        return session, plaintext
