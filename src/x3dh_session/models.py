"""Data models for the X3DH session library.

Bytes fields are raw key/ciphertext bytes in Python and base64 in JSON.
"""

from typing import List
from datetime import datetime
from enum import Enum
from pydantic import BaseModel, Field, ConfigDict


_WIRE_CONFIG = ConfigDict(
    frozen=True,
    ser_json_bytes="base64",
    val_json_bytes="base64",
)


class OneTimePrekey(BaseModel):
    """Public half of a one-time prekey."""

    key_id: int
    public_key: bytes

    model_config = _WIRE_CONFIG


class PrekeyBundle(BaseModel):
    """Prekey bundle published by a responder."""

    identity_key: bytes
    verify_key: bytes
    signed_prekey: bytes
    signed_prekey_signature: bytes
    one_time_prekeys: List[OneTimePrekey] = []

    model_config = _WIRE_CONFIG


class DownloadedBundle(BaseModel):
    """Prekey bundle as served to an initiator, with one selected one-time prekey."""

    identity_key: bytes
    verify_key: bytes
    signed_prekey: bytes
    signed_prekey_signature: bytes
    one_time_prekey_id: int
    one_time_prekey: bytes

    model_config = _WIRE_CONFIG


class HandshakeMessage(BaseModel):
    """Initial message carrying the initiator's X3DH parameters."""

    identity_key: bytes
    ephemeral_key: bytes
    one_time_prekey_id: int
    ciphertext: bytes
    nonce: bytes

    model_config = _WIRE_CONFIG


class MessageHeader(BaseModel):
    """Header sent alongside each session message."""

    nonce: bytes

    model_config = _WIRE_CONFIG


class MessageEnvelope(BaseModel):
    """Encrypted session message."""

    nonce: bytes
    ciphertext: bytes

    model_config = _WIRE_CONFIG

    @property
    def header(self) -> MessageHeader:
        return MessageHeader(nonce=self.nonce)


class SessionRole(str, Enum):
    """Side of the handshake a session was established from."""

    INITIATOR = "initiator"
    RESPONDER = "responder"


class SessionState(str, Enum):
    """Handshake state towards a single peer."""

    UNINITIALIZED = "uninitialized"
    ESTABLISHED = "established"


class Session(BaseModel):
    """Established session with a peer. Never transmitted."""

    peer_id: str
    peer_identity_key: bytes
    role: SessionRole
    session_key: bytes = Field(repr=False)
    associated_data: bytes
    created_at: str = Field(default_factory=lambda: datetime.now().isoformat())

    model_config = ConfigDict(frozen=True)
