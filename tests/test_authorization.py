"""
Authorization Protocol Tests
"""

from unittest.mock import Mock

import pytest

from distributor_sdk.authorization import (
    AuthorizationProtocol, DecryptionSession, build_typed_data, generate_keypair,
    recover_grant_signer, sign_grant,
)
from distributor_sdk.codec import ZERO_HANDLE
from distributor_sdk.dist_types import SECONDS_PER_DAY, DecryptionState
from distributor_sdk.errors import (
    ERROR_MARKER, AuthorizationFailed, GrantExpired, OwnerMismatch, ProtocolStateError,
)

TOKEN = "0x" + "12" * 20


@pytest.fixture
def protocol(deployment, clock):
    return AuthorizationProtocol(
        deployment.backend,
        [deployment.token_address, deployment.distributor_address],
        chain_id=deployment.chain_id,
        verifying_contract=deployment.backend.verifying_contract,
        clock=clock,
    )


@pytest.fixture
def alice_handle(deployment, deployer, alice):
    """Alice holds 100 raw units."""
    return deployment.ledger.mint(deployer.address, alice.address, 100)


def offline_session(clock, service=None):
    return DecryptionSession(service or Mock(), [TOKEN], chain_id=31337, clock=clock)


class TestGrant:
    """Tests for keypairs and signed grants."""

    def test_keypairs_are_fresh(self):
        first, second = generate_keypair(), generate_keypair()
        assert first.public_key != second.public_key
        assert first.public_key.startswith("0x") and len(first.public_key) == 130

    def test_private_key_not_in_repr(self):
        keypair = generate_keypair()
        assert keypair.private_key not in repr(keypair)

    def test_typed_data_shape(self):
        typed = build_typed_data(generate_keypair().public_key, [TOKEN], 1000, 10,
                                 31337, TOKEN)
        assert typed["primaryType"] == "UserDecryptRequestVerification"
        assert typed["domain"]["name"] == "Decryption"
        assert typed["message"]["durationDays"] == 10
        assert typed["message"]["extraData"] == b""

    def test_sign_and_recover(self, alice):
        grant = sign_grant(alice, generate_keypair(), [TOKEN], 1000, 10, 31337, TOKEN)
        assert grant.user_address == alice.address
        assert recover_grant_signer(grant) == alice.address

    def test_window(self, alice):
        grant = sign_grant(alice, generate_keypair(), [TOKEN], 1000, 10, 31337, TOKEN)
        assert grant.expires_at == 1000 + 10 * SECONDS_PER_DAY
        assert not grant.is_expired(grant.expires_at - 1)
        assert grant.is_expired(grant.expires_at)

    def test_request_has_no_private_key(self, alice):
        keypair = generate_keypair()
        grant = sign_grant(alice, keypair, [TOKEN], 1000, 10, 31337, TOKEN)
        assert keypair.private_key not in str(grant.to_request())


class TestSession:
    """Tests for the per-attempt state machine."""

    def test_happy_path(self, protocol, alice, alice_handle):
        session = protocol.new_session()
        assert session.state == DecryptionState.IDLE
        session.generate_keypair()
        assert session.state == DecryptionState.KEYPAIR_GENERATED
        session.sign(alice, alice.address)
        assert session.state == DecryptionState.REQUEST_SIGNED
        assert session.submit(alice_handle) == 100
        assert session.state == DecryptionState.PLAINTEXT_RECEIVED

    def test_owner_mismatch_before_network(self, clock, alice, bob):
        """Signer != owner fails locally, the oracle is never called."""
        service = Mock()
        session = offline_session(clock, service)
        session.generate_keypair()
        with pytest.raises(OwnerMismatch):
            session.sign(bob, alice.address)
        assert session.state == DecryptionState.REJECTED
        service.decrypt_batch.assert_not_called()

    def test_expired_before_submit(self, clock, alice):
        service = Mock()
        session = offline_session(clock, service)
        session.generate_keypair()
        session.sign(alice, alice.address)
        clock.advance(10 * SECONDS_PER_DAY)
        with pytest.raises(GrantExpired):
            session.submit("0x" + "01" * 32)
        assert session.state == DecryptionState.EXPIRED
        service.decrypt_batch.assert_not_called()

    def test_expired_during_oracle_call(self, clock, alice):
        """Plaintext arriving after the window is discarded."""
        handle = "0x" + "01" * 32

        def slow_oracle(pairs, grant):
            clock.advance(11 * SECONDS_PER_DAY)
            return {handle: 5}

        session = offline_session(clock, Mock(decrypt_batch=Mock(side_effect=slow_oracle)))
        session.generate_keypair()
        session.sign(alice, alice.address)
        with pytest.raises(GrantExpired):
            session.submit(handle)
        assert session.state == DecryptionState.EXPIRED

    def test_oracle_rejection(self, protocol, bob, alice_handle):
        """Bob cannot decrypt Alice's handle even with his own valid grant."""
        session = protocol.new_session()
        session.generate_keypair()
        session.sign(bob, bob.address)
        with pytest.raises(AuthorizationFailed):
            session.submit(alice_handle)
        assert session.state == DecryptionState.REJECTED

    def test_oracle_expiry_maps_to_expired(self, clock, alice):
        service = Mock(decrypt_batch=Mock(side_effect=GrantExpired("late")))
        session = offline_session(clock, service)
        session.generate_keypair()
        session.sign(alice, alice.address)
        with pytest.raises(GrantExpired):
            session.submit("0x" + "01" * 32)
        assert session.state == DecryptionState.EXPIRED

    def test_missing_value_rejected(self, clock, alice):
        session = offline_session(clock, Mock(decrypt_batch=Mock(return_value={})))
        session.generate_keypair()
        session.sign(alice, alice.address)
        with pytest.raises(AuthorizationFailed):
            session.submit("0x" + "01" * 32)

    def test_zero_handle(self, clock, alice):
        """Uninitialized balance decrypts to 0 without an oracle call."""
        service = Mock()
        session = offline_session(clock, service)
        assert session.run(alice, alice.address, ZERO_HANDLE) == 0
        service.decrypt_batch.assert_not_called()

    def test_out_of_order(self, clock, alice):
        session = offline_session(clock)
        with pytest.raises(ProtocolStateError):
            session.sign(alice, alice.address)
        with pytest.raises(ProtocolStateError):
            session.submit(ZERO_HANDLE)

    def test_single_use(self, clock, alice):
        session = offline_session(clock)
        session.run(alice, alice.address, ZERO_HANDLE)
        with pytest.raises(ProtocolStateError):
            session.generate_keypair()
        with pytest.raises(ProtocolStateError):
            session.submit(ZERO_HANDLE)

    def test_requires_contracts(self, clock):
        with pytest.raises(ValueError):
            DecryptionSession(Mock(), [], chain_id=31337, clock=clock)


class TestProtocol:
    """Tests for the high-level decrypt calls."""

    def test_decrypt(self, protocol, alice, alice_handle):
        assert protocol.decrypt(alice, alice.address, alice_handle) == 100

    def test_each_attempt_new_keypair(self, protocol):
        first, second = protocol.new_session(), protocol.new_session()
        assert first.generate_keypair() != second.generate_keypair()

    def test_display(self, protocol, alice, alice_handle):
        assert protocol.decrypt_for_display(alice, alice.address, alice_handle) == "0.0001"

    def test_display_error_marker(self, protocol, alice, bob, alice_handle):
        """Failures show the error marker, never a stale or zero value."""
        assert protocol.decrypt_for_display(bob, alice.address, alice_handle) == ERROR_MARKER

    def test_contract_not_in_grant(self, protocol, alice, alice_handle):
        with pytest.raises(AuthorizationFailed):
            protocol.decrypt(alice, alice.address, alice_handle, "0x" + "56" * 20)

    def test_old_handle_after_update(self, protocol, deployment, deployer, alice, alice_handle):
        deployment.ledger.mint(deployer.address, alice.address, 50)
        assert protocol.decrypt(alice, alice.address, alice_handle) == 100
        latest = deployment.ledger.confidential_balance_of(alice.address)
        assert protocol.decrypt(alice, alice.address, latest) == 150

    def test_authorization_scoping(self, protocol, deployment, alice, bob, alice_handle):
        """Grant signed by Bob for Alice's balance fails with OwnerMismatch."""
        with pytest.raises(OwnerMismatch):
            protocol.decrypt(bob, alice.address, alice_handle)

    def test_grant_expiry_is_authoritative(self, protocol, alice, alice_handle, clock):
        session = protocol.new_session()
        session.generate_keypair()
        session.sign(alice, alice.address)
        clock.advance(10 * SECONDS_PER_DAY + 1)
        with pytest.raises(GrantExpired):
            session.submit(alice_handle)
