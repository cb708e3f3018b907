"""Session management for established X3DH sessions."""

import asyncio
import logging
import weakref
from typing import Dict, Optional

from .aead import AES256GCM
from ..models import MessageEnvelope, Session, SessionState
from ..exceptions import MissingKeyMaterial

logger = logging.getLogger(__name__)


class SessionManager:
    """
    Manages sessions with other parties, keyed by peer id.

    A session is a fixed (session_key, associated_data) pair. The key never
    rotates: every message in both directions uses it, and only the nonce
    varies. There is no ratchet.
    """

    def __init__(self, cipher: AES256GCM):
        """
        Initialize session manager.

        Args:
            cipher: AEAD cipher used for session messages
        """
        self.cipher = cipher
        self._sessions: Dict[str, Session] = {}
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def lock(self, peer_id: str) -> asyncio.Lock:
        """
        Lock serializing handshakes with one peer.

        Locks are weakly held: an entry lives only while a handshake holds
        or waits on it.
        """
        lock = self._locks.get(peer_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[peer_id] = lock
        return lock

    def get_session(self, peer_id: str) -> Optional[Session]:
        return self._sessions.get(peer_id)

    def require_session(self, peer_id: str) -> Session:
        """
        Get the established session with peer.

        Raises:
            MissingKeyMaterial: If no session exists
        """
        session = self._sessions.get(peer_id)
        if session is None:
            raise MissingKeyMaterial(f"No session established with {peer_id}")
        return session

    def get_state(self, peer_id: str) -> SessionState:
        if peer_id in self._sessions:
            return SessionState.ESTABLISHED
        return SessionState.UNINITIALIZED

    def establish(self, session: Session) -> None:
        """Store a session, replacing any earlier one with the same peer."""
        if session.peer_id in self._sessions:
            logger.info(f"Replacing existing session with {session.peer_id}")
        self._sessions[session.peer_id] = session
        logger.info(f"Session established with {session.peer_id} as {session.role.value}")

    def close_session(self, peer_id: str) -> None:
        self._sessions.pop(peer_id, None)
        self._locks.pop(peer_id, None)

    def list_peers(self) -> list[str]:
        return list(self._sessions)

    def encrypt(self, peer_id: str, plaintext: str) -> MessageEnvelope:
        """
        Encrypt a message for peer.

        Args:
            peer_id: Peer id
            plaintext: Message text

        Returns:
            MessageEnvelope with a fresh nonce
        """
        session = self.require_session(peer_id)
        ciphertext, nonce = self.cipher.encrypt_message(
            session.session_key, plaintext, session.associated_data
        )
        return MessageEnvelope(nonce=nonce, ciphertext=ciphertext)

    def decrypt(self, peer_id: str, envelope: MessageEnvelope) -> str:
        """
        Decrypt a message from peer.

        Raises:
            MissingKeyMaterial: If no session exists
            AuthenticationError: If the message fails authentication
        """
        session = self.require_session(peer_id)
        return self.cipher.decrypt_message(
            session.session_key,
            envelope.ciphertext,
            session.associated_data,
            envelope.nonce,
        )
