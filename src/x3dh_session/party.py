"""Party: one participant of an X3DH conversation."""

import logging
from typing import Optional, Tuple

from .config import ProtocolConfig, get_config
from .crypto.key_manager import KeyManager, KeyState
from .crypto.provider import CryptoProvider, get_provider
from .crypto.session_manager import SessionManager
from .crypto.utils import format_fingerprint
from .crypto.x3dh import X3DHProtocol
from .exceptions import X3DHError
from .logging import configure_logging, handle_exception
from .models import (
    DownloadedBundle,
    HandshakeMessage,
    MessageEnvelope,
    MessageHeader,
    PrekeyBundle,
    SessionState,
)

logger = logging.getLogger(__name__)


class Party:
    """
    A participant holding its own keys and sessions.

    Example:
        >>> bob = Party("bob")
        >>> await bob.initialize()
        >>> await store.upload(bob.prekey_bundle())
        >>> alice = Party("alice")
        >>> await alice.initialize()
        >>> handshake = await alice.init_x3dh_initiator(await store.download(), "hi")
        >>> await bob.init_x3dh_responder(handshake)
        'hi'

    Sessions are keyed by the peer's identity key fingerprint.
    """

    def __init__(
        self,
        name: str = "party",
        provider: Optional[CryptoProvider] = None,
        config: Optional[ProtocolConfig] = None,
    ):
        """
        Initialize party.

        Args:
            name: Name used in log messages
            provider: Crypto provider (built from config.curve if not given)
            config: Protocol configuration (global config if not given). Its
                log_level and log_file are applied to the package logger.
        """
        self.name = name
        self.config = config or get_config()
        configure_logging(self.config.log_level, self.config.log_file)
        self.provider = provider or get_provider(self.config.curve)

        self.keys = KeyManager(
            self.provider,
            owner=name,
            one_time_prekey_count=self.config.one_time_prekey_count,
        )
        self.protocol = X3DHProtocol(self.provider, info_prefix=self.config.kdf_info_prefix)
        self.sessions = SessionManager(self.provider.aead)

    async def initialize(self) -> None:
        """Generate identity, signed prekey and one-time prekey material."""
        await self.keys.initialize()
        logger.debug(f"{self.name} initialized with fingerprint {self.fingerprint}")

    @property
    def key_state(self) -> KeyState:
        return self.keys.state

    @property
    def fingerprint(self) -> str:
        """Fingerprint of own identity key, used as peer id by others."""
        return self.keys.get_fingerprint()

    def prekey_bundle(self) -> PrekeyBundle:
        """Public bundle to publish."""
        return self.keys.get_public_bundle()

    def session_state(self, peer_id: str) -> SessionState:
        return self.sessions.get_state(peer_id)

    async def init_x3dh_initiator(
        self, bundle: DownloadedBundle, initial_message: str
    ) -> HandshakeMessage:
        """
        Establish a session with the bundle's owner.

        Args:
            bundle: Peer's downloaded prekey bundle
            initial_message: Plaintext to embed in the handshake message

        Returns:
            HandshakeMessage to deliver to the peer

        Raises:
            MissingKeyMaterial: If own keys are not initialized
            BundleVerificationError: If the bundle signature is invalid
        """
        peer_id = format_fingerprint(bundle.identity_key)
        try:
            identity = self.keys.get_identity_keypair()
            async with self.sessions.lock(peer_id):
                session, message = await self.protocol.initiate_session(
                    identity, bundle, initial_message
                )
                self.sessions.establish(session)
        except X3DHError as e:
            handle_exception(e, context=f"{self.name}.init_x3dh_initiator")
            raise

        return message

    async def init_x3dh_responder(self, message: HandshakeMessage) -> str:
        """
        Complete a session from a received handshake message.

        The one-time prekey named by the message is consumed only if the
        initial message decrypts.

        Returns:
            Decrypted initial message

        Raises:
            MissingKeyMaterial: If own keys are not initialized
            UnknownPrekeyError: If the one-time prekey is unknown or consumed
            AuthenticationError: If the initial message fails authentication
        """
        peer_id = format_fingerprint(message.identity_key)
        try:
            identity = self.keys.get_identity_keypair()
            signed_prekey = self.keys.get_signed_prekey()
            async with self.sessions.lock(peer_id):
                async with self.keys.reserve_prekey(message.one_time_prekey_id) as one_time_prekey:
                    session, plaintext = await self.protocol.respond_session(
                        identity, signed_prekey, one_time_prekey, message
                    )
                self.sessions.establish(session)
        except X3DHError as e:
            handle_exception(e, context=f"{self.name}.init_x3dh_responder")
            raise

        return plaintext

    async def send_message(self, peer_id: str, plaintext: str) -> Tuple[MessageHeader, bytes]:
        """
        Encrypt a message for an established peer.

        Returns:
            Tuple of (header carrying the nonce, ciphertext)
        """
        try:
            envelope = self.sessions.encrypt(peer_id, plaintext)
        except X3DHError as e:
            handle_exception(e, context=f"{self.name}.send_message")
            raise

        return envelope.header, envelope.ciphertext

    async def receive_message(self, peer_id: str, header: MessageHeader, ciphertext: bytes) -> str:
        """
        Decrypt a message from an established peer.

        Raises:
            MissingKeyMaterial: If no session exists with peer
            AuthenticationError: If the message fails authentication
        """
        envelope = MessageEnvelope(nonce=header.nonce, ciphertext=ciphertext)
        try:
            return self.sessions.decrypt(peer_id, envelope)
        except X3DHError as e:
            handle_exception(e, context=f"{self.name}.receive_message")
            raise
