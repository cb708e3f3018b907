"""End-to-end tests for parties exchanging messages over X3DH sessions."""

import asyncio
import gc
import logging
import random

import pytest

from x3dh_session import (
    AuthenticationError,
    BundleVerificationError,
    Curve,
    InMemoryPrekeyStore,
    MessageHeader,
    MissingKeyMaterial,
    Party,
    ProtocolConfig,
    SessionState,
    UnknownPrekeyError,
    ValidationError,
)
from x3dh_session.crypto import KeyState, get_provider
from x3dh_session.logging import LogLevel, configure_logging, get_error_handler


@pytest.fixture(params=[Curve.P256, Curve.X25519])
def config(request):
    return ProtocolConfig(curve=request.param)


@pytest.fixture
async def alice(config):
    party = Party("alice", config=config)
    await party.initialize()
    return party


@pytest.fixture
async def bob(config):
    party = Party("bob", config=config)
    await party.initialize()
    return party


@pytest.fixture
async def store(bob):
    prekey_store = InMemoryPrekeyStore()
    await prekey_store.upload(bob.prekey_bundle())
    return prekey_store


@pytest.mark.asyncio
async def test_end_to_end_scenario(alice, bob, store):
    """Bob publishes, Alice initiates, both exchange messages."""
    bundle = await store.download()

    handshake = await alice.init_x3dh_initiator(bundle, "Initial message")
    assert alice.session_state(bob.fingerprint) == SessionState.ESTABLISHED
    assert bob.session_state(alice.fingerprint) == SessionState.UNINITIALIZED

    assert await bob.init_x3dh_responder(handshake) == "Initial message"
    assert bob.session_state(alice.fingerprint) == SessionState.ESTABLISHED

    header, ciphertext = await alice.send_message(bob.fingerprint, "a1")
    assert await bob.receive_message(alice.fingerprint, header, ciphertext) == "a1"

    header, ciphertext = await bob.send_message(alice.fingerprint, "b1")
    assert await alice.receive_message(bob.fingerprint, header, ciphertext) == "b1"

    header, ciphertext = await alice.send_message(bob.fingerprint, "a2")
    assert await bob.receive_message(alice.fingerprint, header, ciphertext) == "a2"

    header, ciphertext = await bob.send_message(alice.fingerprint, "b2")
    assert await alice.receive_message(bob.fingerprint, header, ciphertext) == "b2"


@pytest.mark.asyncio
async def test_sessions_agree(alice, bob, store):
    handshake = await alice.init_x3dh_initiator(await store.download(), "Initial message")
    await bob.init_x3dh_responder(handshake)

    alice_session = alice.sessions.get_session(bob.fingerprint)
    bob_session = bob.sessions.get_session(alice.fingerprint)

    assert alice_session.session_key == bob_session.session_key
    assert alice_session.associated_data == bob_session.associated_data


@pytest.mark.asyncio
async def test_one_time_prekey_consumed(alice, bob, store):
    assert bob.keys.get_available_prekey_count() == 1

    handshake = await alice.init_x3dh_initiator(await store.download(), "Initial message")
    await bob.init_x3dh_responder(handshake)

    assert bob.keys.get_available_prekey_count() == 0

    # Replaying the same handshake must not derive a second session
    with pytest.raises(UnknownPrekeyError):
        await bob.init_x3dh_responder(handshake)


@pytest.mark.asyncio
async def test_reused_prekey_rejected_for_second_initiator(config, alice, bob):
    bundle = bob.prekey_bundle()
    carol = Party("carol", config=config)
    await carol.initialize()

    first_store = InMemoryPrekeyStore()
    await first_store.upload(bundle)
    second_store = InMemoryPrekeyStore()
    await second_store.upload(bundle)

    first = await alice.init_x3dh_initiator(await first_store.download(), "from alice")
    second = await carol.init_x3dh_initiator(await second_store.download(), "from carol")
    assert first.one_time_prekey_id == second.one_time_prekey_id

    assert await bob.init_x3dh_responder(first) == "from alice"
    with pytest.raises(UnknownPrekeyError):
        await bob.init_x3dh_responder(second)
    assert bob.session_state(carol.fingerprint) == SessionState.UNINITIALIZED


@pytest.mark.asyncio
async def test_failed_handshake_keeps_prekey(alice, bob, store):
    handshake = await alice.init_x3dh_initiator(await store.download(), "Initial message")

    tampered = bytearray(handshake.ciphertext)
    tampered[-1] ^= 0x01
    with pytest.raises(AuthenticationError):
        await bob.init_x3dh_responder(handshake.model_copy(update={"ciphertext": bytes(tampered)}))

    assert bob.keys.get_available_prekey_count() == 1
    assert bob.session_state(alice.fingerprint) == SessionState.UNINITIALIZED

    # The genuine message still completes the handshake
    assert await bob.init_x3dh_responder(handshake) == "Initial message"


@pytest.mark.asyncio
async def test_concurrent_responders_consume_once(alice, bob, store):
    handshake = await alice.init_x3dh_initiator(await store.download(), "Initial message")

    results = await asyncio.gather(
        bob.init_x3dh_responder(handshake),
        bob.init_x3dh_responder(handshake),
        return_exceptions=True,
    )

    assert results.count("Initial message") == 1
    assert sum(isinstance(r, UnknownPrekeyError) for r in results) == 1


@pytest.mark.asyncio
async def test_tampered_bundle_aborts(alice, store):
    bundle = await store.download()
    tampered = bytearray(bundle.signed_prekey_signature)
    tampered[0] ^= 0x01

    with pytest.raises(BundleVerificationError):
        await alice.init_x3dh_initiator(
            bundle.model_copy(update={"signed_prekey_signature": bytes(tampered)}),
            "Initial message",
        )

    assert alice.sessions.list_peers() == []


@pytest.mark.asyncio
async def test_tampered_message_rejected(alice, bob, store):
    handshake = await alice.init_x3dh_initiator(await store.download(), "Initial message")
    await bob.init_x3dh_responder(handshake)

    header, ciphertext = await alice.send_message(bob.fingerprint, "a1")
    tampered = bytearray(ciphertext)
    tampered[0] ^= 0x01

    with pytest.raises(AuthenticationError):
        await bob.receive_message(alice.fingerprint, header, bytes(tampered))


@pytest.mark.asyncio
async def test_uninitialized_party(config, bob):
    party = Party("dave", config=config)
    assert party.key_state == KeyState.UNINITIALIZED

    with pytest.raises(MissingKeyMaterial):
        party.prekey_bundle()

    with pytest.raises(MissingKeyMaterial):
        _ = party.fingerprint

    store = InMemoryPrekeyStore()
    await store.upload(bob.prekey_bundle())
    with pytest.raises(MissingKeyMaterial):
        await party.init_x3dh_initiator(await store.download(), "Initial message")


@pytest.mark.asyncio
async def test_messaging_without_session(alice, bob):
    with pytest.raises(MissingKeyMaterial):
        await alice.send_message(bob.fingerprint, "a1")


@pytest.mark.asyncio
async def test_failures_are_logged_without_key_material(alice, store):
    handler = get_error_handler()
    handler.clear_error_history()
    bundle = await store.download()
    tampered = bundle.model_copy(update={"signed_prekey_signature": bytes(64)})

    with pytest.raises(BundleVerificationError):
        await alice.init_x3dh_initiator(tampered, "Initial message")

    entry = handler.get_error_history(count=1)[0]
    assert entry["type"] == "BundleVerificationError"
    assert entry["context"] == "alice.init_x3dh_initiator"
    assert bundle.signed_prekey.hex() not in entry["message"]


@pytest.mark.asyncio
async def test_rehandshake_replaces_session(alice, config):
    bob = Party("bob", config=ProtocolConfig(curve=config.curve, one_time_prekey_count=2))
    await bob.initialize()
    store = InMemoryPrekeyStore()
    await store.upload(bob.prekey_bundle())

    await bob.init_x3dh_responder(await alice.init_x3dh_initiator(await store.download(), "first"))
    first_key = alice.sessions.get_session(bob.fingerprint).session_key

    await bob.init_x3dh_responder(await alice.init_x3dh_initiator(await store.download(), "second"))
    assert alice.sessions.get_session(bob.fingerprint).session_key != first_key

    header, ciphertext = await bob.send_message(alice.fingerprint, "b1")
    assert await alice.receive_message(bob.fingerprint, header, ciphertext) == "b1"


@pytest.mark.asyncio
async def test_handshake_message_json_round_trip(alice, bob, store):
    """Handshake parameters survive base64 JSON transport."""
    from x3dh_session import HandshakeMessage

    handshake = await alice.init_x3dh_initiator(await store.download(), "Initial message")
    received = HandshakeMessage.model_validate_json(handshake.model_dump_json())

    assert received == handshake
    assert await bob.init_x3dh_responder(received) == "Initial message"


@pytest.mark.asyncio
async def test_seeded_parties_are_deterministic():
    def build(name, seed):
        provider = get_provider(Curve.P256, random_bytes=random.Random(seed).randbytes)
        return Party(name, provider=provider, config=ProtocolConfig())

    first = build("bob", 7)
    second = build("bob", 7)
    await first.initialize()
    await second.initialize()

    assert first.fingerprint == second.fingerprint
    assert first.prekey_bundle().signed_prekey == second.prekey_bundle().signed_prekey


@pytest.mark.asyncio
async def test_failed_handshakes_do_not_accumulate_locks(config, alice, bob, store):
    handshake = await alice.init_x3dh_initiator(await store.download(), "Initial message")
    provider = get_provider(config.curve)

    for _ in range(50):
        forged = handshake.model_copy(
            update={"identity_key": provider.generate_keypair().public_key}
        )
        with pytest.raises(AuthenticationError):
            await bob.init_x3dh_responder(forged)

    gc.collect()
    assert len(bob.sessions._locks) == 0
    assert bob.sessions.list_peers() == []

    assert await bob.init_x3dh_responder(handshake) == "Initial message"


@pytest.mark.asyncio
async def test_non_utf8_message_reported(alice, bob, store):
    await bob.init_x3dh_responder(
        await alice.init_x3dh_initiator(await store.download(), "Initial message")
    )
    handler = get_error_handler()
    handler.clear_error_history()

    session = alice.sessions.get_session(bob.fingerprint)
    ciphertext, nonce = alice.provider.aead.encrypt(
        session.session_key, b"\xff\xfe", session.associated_data
    )

    with pytest.raises(ValidationError):
        await bob.receive_message(alice.fingerprint, MessageHeader(nonce=nonce), ciphertext)

    entry = handler.get_error_history(count=1)[0]
    assert entry["type"] == "ValidationError"
    assert entry["context"] == "bob.receive_message"


@pytest.mark.asyncio
async def test_config_log_settings_applied(config, tmp_path):
    log_file = tmp_path / "logs" / "x3dh.log"
    handler = get_error_handler()
    try:
        party = Party(
            "erin",
            config=ProtocolConfig(curve=config.curve, log_level=LogLevel.DEBUG, log_file=str(log_file)),
        )
        await party.initialize()

        assert handler.log_level == LogLevel.DEBUG
        assert all(h.level == logging.DEBUG for h in handler.logger.handlers)
        assert f"erin initialized with fingerprint {party.fingerprint}" in log_file.read_text()
    finally:
        for h in list(handler.logger.handlers):
            if isinstance(h, logging.FileHandler):
                h.close()
                handler.logger.removeHandler(h)
        configure_logging(LogLevel.INFO)
