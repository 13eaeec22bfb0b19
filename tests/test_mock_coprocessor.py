"""
Mock Coprocessor Tests
"""

import pytest

from distributor_sdk.amounts import MAX_UINT64
from distributor_sdk.authorization import generate_keypair, sign_grant
from distributor_sdk.codec import ZERO_HANDLE
from distributor_sdk.dist_types import HandleContractPair
from distributor_sdk.errors import AuthorizationFailed, GrantExpired, InvalidProof, OutOfRange
from distributor_sdk.mock_coprocessor import MockCoprocessor

CONTRACT = "0x" + "12" * 20
OTHER_CONTRACT = "0x" + "34" * 20


@pytest.fixture
def fhe(clock):
    return MockCoprocessor(clock=clock)


def _grant(fhe, signer, contracts, clock, duration_days=10):
    return sign_grant(signer, generate_keypair(), contracts, int(clock()),
                      duration_days, fhe.chain_id, fhe.verifying_contract)


class TestEncryption:
    """Tests for input encryption and proof binding."""

    def test_encrypt_batch(self, fhe, alice):
        bundle = fhe.encrypt_batch(CONTRACT, alice.address, [100, 200])
        assert len(bundle) == 2
        assert len(set(bundle.handles)) == 2
        assert [fhe.peek(h) for h in bundle.handles] == [100, 200]

    def test_handles_hide_values(self, fhe, alice):
        """Equal plaintexts get distinct handles."""
        bundle = fhe.encrypt_batch(CONTRACT, alice.address, [5, 5])
        assert bundle.handles[0] != bundle.handles[1]

    def test_rejects_out_of_range(self, fhe, alice):
        with pytest.raises(OutOfRange):
            fhe.encrypt_batch(CONTRACT, alice.address, [-1])

    def test_verify_input(self, fhe, alice):
        bundle = fhe.encrypt_batch(CONTRACT, alice.address, [1])
        handle = fhe.verify_input(bundle.handles[0], bundle.proof, CONTRACT, alice.address)
        assert handle == bundle.handles[0]
        assert fhe.is_allowed(handle, CONTRACT)

    def test_transient_permission_cleared(self, fhe, alice):
        bundle = fhe.encrypt_batch(CONTRACT, alice.address, [1])
        fhe.verify_input(bundle.handles[0], bundle.proof, CONTRACT, alice.address)
        fhe.end_transaction()
        assert not fhe.is_allowed(bundle.handles[0], CONTRACT)

    def test_proof_bound_to_contract(self, fhe, alice):
        bundle = fhe.encrypt_batch(CONTRACT, alice.address, [1])
        with pytest.raises(InvalidProof):
            fhe.verify_input(bundle.handles[0], bundle.proof, OTHER_CONTRACT, alice.address)

    def test_proof_bound_to_submitter(self, fhe, alice, bob):
        bundle = fhe.encrypt_batch(CONTRACT, alice.address, [1])
        with pytest.raises(InvalidProof):
            fhe.verify_input(bundle.handles[0], bundle.proof, CONTRACT, bob.address)

    def test_proof_covers_only_its_handles(self, fhe, alice):
        first = fhe.encrypt_batch(CONTRACT, alice.address, [1])
        second = fhe.encrypt_batch(CONTRACT, alice.address, [2])
        with pytest.raises(InvalidProof):
            fhe.verify_input(second.handles[0], first.proof, CONTRACT, alice.address)

    def test_unknown_proof(self, fhe, alice):
        bundle = fhe.encrypt_batch(CONTRACT, alice.address, [1])
        with pytest.raises(InvalidProof):
            fhe.verify_input(bundle.handles[0], "0x" + "00" * 32, CONTRACT, alice.address)


class TestArithmetic:
    """Tests for homomorphic operations."""

    def test_add_wraps(self, fhe):
        total = fhe.add(fhe.trivial_encrypt(MAX_UINT64), fhe.trivial_encrypt(1))
        assert fhe.peek(total) == 0

    def test_sub_wraps(self, fhe):
        assert fhe.peek(fhe.sub(ZERO_HANDLE, fhe.trivial_encrypt(1))) == MAX_UINT64

    def test_comparisons(self, fhe):
        a, b = fhe.trivial_encrypt(3), fhe.trivial_encrypt(5)
        assert fhe.reveal(fhe.lt(a, b))
        assert not fhe.reveal(fhe.ge(a, b))
        assert fhe.reveal(fhe.ge(b, b))

    def test_select(self, fhe):
        yes, no = fhe.trivial_encrypt(1), fhe.trivial_encrypt(0)
        a, b = fhe.trivial_encrypt(10), fhe.trivial_encrypt(20)
        assert fhe.peek(fhe.select(yes, a, b)) == 10
        assert fhe.peek(fhe.select(no, a, b)) == 20

    def test_zero_handle_reads_zero(self, fhe):
        assert fhe.peek(ZERO_HANDLE) == 0


class TestDecryption:
    """Tests for grant verification."""

    def test_decrypt_allowed_handle(self, fhe, alice, clock):
        handle = fhe.trivial_encrypt(42)
        fhe.allow(handle, alice.address)
        fhe.allow(handle, CONTRACT)
        grant = _grant(fhe, alice, [CONTRACT], clock)
        result = fhe.decrypt_batch([HandleContractPair(handle, CONTRACT)], grant)
        assert result == {handle: 42}

    def test_user_not_in_acl(self, fhe, alice, clock):
        handle = fhe.trivial_encrypt(42)
        fhe.allow(handle, CONTRACT)
        grant = _grant(fhe, alice, [CONTRACT], clock)
        with pytest.raises(AuthorizationFailed):
            fhe.decrypt_batch([HandleContractPair(handle, CONTRACT)], grant)

    def test_contract_not_in_grant(self, fhe, alice, clock):
        handle = fhe.trivial_encrypt(42)
        fhe.allow_many(handle, [alice.address, OTHER_CONTRACT])
        grant = _grant(fhe, alice, [CONTRACT], clock)
        with pytest.raises(AuthorizationFailed):
            fhe.decrypt_batch([HandleContractPair(handle, OTHER_CONTRACT)], grant)

    def test_tampered_grant(self, fhe, alice, clock):
        """Changing a signed field breaks the signature."""
        handle = fhe.trivial_encrypt(42)
        fhe.allow_many(handle, [alice.address, CONTRACT])
        grant = _grant(fhe, alice, [CONTRACT], clock)
        grant.duration_days = 365
        with pytest.raises(AuthorizationFailed):
            fhe.decrypt_batch([HandleContractPair(handle, CONTRACT)], grant)

    def test_grant_for_other_user(self, fhe, alice, bob, clock):
        """A grant claiming another user address is rejected."""
        handle = fhe.trivial_encrypt(42)
        fhe.allow_many(handle, [alice.address, CONTRACT])
        grant = _grant(fhe, bob, [CONTRACT], clock)
        grant.user_address = alice.address
        with pytest.raises(AuthorizationFailed):
            fhe.decrypt_batch([HandleContractPair(handle, CONTRACT)], grant)

    def test_expired_grant(self, fhe, alice, clock):
        handle = fhe.trivial_encrypt(42)
        fhe.allow_many(handle, [alice.address, CONTRACT])
        grant = _grant(fhe, alice, [CONTRACT], clock, duration_days=1)
        clock.advance(86400)
        with pytest.raises(GrantExpired):
            fhe.decrypt_batch([HandleContractPair(handle, CONTRACT)], grant)

    def test_wrong_chain(self, alice, clock):
        fhe = MockCoprocessor(clock=clock)
        other = MockCoprocessor(chain_id=11155111, clock=clock)
        handle = fhe.trivial_encrypt(1)
        fhe.allow_many(handle, [alice.address, CONTRACT])
        grant = _grant(other, alice, [CONTRACT], clock)
        with pytest.raises(AuthorizationFailed):
            fhe.decrypt_batch([HandleContractPair(handle, CONTRACT)], grant)
