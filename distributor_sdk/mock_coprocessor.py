# Copyright (c) 2025 The Confidential Distributor developers
# Distributed under the MIT software license

"""
Confidential Distributor SDK - Mock Coprocessor

Plain-arithmetic CoprocessorBackend for local mode and tests.

Values are kept in a private table keyed by handle; handles themselves are
random-looking keccak digests, so nothing about a value can be read from its
handle. What is real:

  - input proofs are HMAC-bound to (contract, submitter, handles)
  - decryption grants are checked with real EIP-712 signature recovery
  - the per-handle ACL is enforced for computation and decryption

What is not: no actual encryption. Use peek() in tests only.
"""

import hashlib
import hmac
import logging
import secrets
import threading
import time
from typing import Callable, Dict, Optional, Sequence, Set, Tuple

from eth_keys.exceptions import ValidationError
from web3 import Web3

from .amounts import MAX_UINT64, check_uint64_values
from .authorization import DEFAULT_DECRYPTION_VERIFIER, recover_grant_signer
from .codec import (
    ZERO_HANDLE, encode_handle, encode_proof, normalize_address, same_address,
)
from .dist_types import CiphertextBundle, DecryptionGrant, HandleContractPair
from .encryption import ArithmeticPolicy, CoprocessorBackend
from .errors import AuthorizationFailed, GrantExpired, InvalidProof

log = logging.getLogger(__name__)

LOCAL_CHAIN_ID = 31337
_MODULUS = MAX_UINT64 + 1


class MockCoprocessor(CoprocessorBackend):
    """
    In-process coprocessor.

    Usage:
        fhe = MockCoprocessor(clock=clock)
        bundle = fhe.encrypt_batch(distributor, alice, [100, 200])
        fhe.verify_input(bundle.handles[0], bundle.proof, distributor, alice)
    """

    def __init__(self, chain_id: int = LOCAL_CHAIN_ID,
                 policy: ArithmeticPolicy = ArithmeticPolicy.REVERT,
                 verifying_contract: str = DEFAULT_DECRYPTION_VERIFIER,
                 clock: Callable[[], float] = time.time,
                 secret: Optional[bytes] = None):
        self.chain_id = chain_id
        self.policy = policy
        self.verifying_contract = normalize_address(verifying_contract)
        self.clock = clock
        self._secret = secret or secrets.token_bytes(32)
        self._counter = 0
        self._lock = threading.Lock()

        self._values: Dict[str, int] = {}
        self._acl: Dict[str, Set[str]] = {}
        self._transient: Dict[str, Set[str]] = {}
        self._inputs: Dict[str, Tuple[str, str, Tuple[str, ...]]] = {}

    # ═══════════════════════════════════════════════════════════════════════
    # STORAGE
    # ═══════════════════════════════════════════════════════════════════════

    def _new_handle(self, value: int, kind: str) -> str:
        with self._lock:
            self._counter += 1
            seed = self._secret + self._counter.to_bytes(8, "big") + kind.encode()
            handle = encode_handle(bytes(Web3.keccak(seed)))
            self._values[handle] = value
        return handle

    def _value(self, handle) -> int:
        handle = encode_handle(handle)
        if handle == ZERO_HANDLE:
            return 0
        if handle not in self._values:
            raise InvalidProof(f"Unknown handle {handle[:18]}...")
        return self._values[handle]

    def peek(self, handle) -> int:
        """Read a plaintext directly. Test helper, bypasses the ACL."""
        return self._value(handle)

    def _bind(self, contract: str, submitter: str, handles: Sequence[str]) -> str:
        message = "|".join([contract.lower(), submitter.lower(), ",".join(handles)])
        digest = hmac.new(self._secret, message.encode(), hashlib.sha256).digest()
        return encode_proof(digest)

    # ═══════════════════════════════════════════════════════════════════════
    # CLIENT SIDE (EncryptionService)
    # ═══════════════════════════════════════════════════════════════════════

    def encrypt_batch(self, contract_address: str, submitter: str,
                      values: Sequence[int]) -> CiphertextBundle:
        values = check_uint64_values(values)
        contract = normalize_address(contract_address)
        user = normalize_address(submitter)

        handles = [self._new_handle(v, "input") for v in values]
        proof = self._bind(contract, user, handles)
        self._inputs[proof] = (contract.lower(), user.lower(), tuple(handles))
        log.debug(f"Encrypted {len(handles)} inputs for {contract} / {user}")
        return CiphertextBundle(handles=handles, proof=proof)

    def decrypt_batch(self, pairs: Sequence[HandleContractPair],
                      grant: DecryptionGrant) -> Dict[str, int]:
        now = self.clock()
        if grant.is_expired(now):
            raise GrantExpired(f"Grant expired at {grant.expires_at}")
        if grant.start_timestamp > now:
            raise AuthorizationFailed("Grant window has not started")
        if grant.chain_id != self.chain_id:
            raise AuthorizationFailed(f"Wrong chain id {grant.chain_id}")
        if not same_address(grant.verifying_contract, self.verifying_contract):
            raise AuthorizationFailed("Wrong verifying contract")

        try:
            signer = recover_grant_signer(grant)
        except (ValueError, ValidationError) as e:
            raise AuthorizationFailed(f"Malformed signature: {e}")
        if not same_address(signer, grant.user_address):
            raise AuthorizationFailed("Signature does not match user address")

        allowed_contracts = {a.lower() for a in grant.contract_addresses}
        result = {}
        for pair in pairs:
            if pair.contract_address.lower() not in allowed_contracts:
                raise AuthorizationFailed(
                    f"Contract {pair.contract_address} not in grant"
                )
            if not self.is_allowed(pair.handle, grant.user_address):
                raise AuthorizationFailed("User is not allowed to decrypt handle")
            if not self.is_allowed(pair.handle, pair.contract_address):
                raise AuthorizationFailed("Contract is not allowed on handle")
            result[pair.handle] = self._value(pair.handle)
        return result

    # ═══════════════════════════════════════════════════════════════════════
    # HOMOMORPHIC OPS
    # ═══════════════════════════════════════════════════════════════════════

    def trivial_encrypt(self, value: int) -> str:
        check_uint64_values([value])
        return self._new_handle(value, "trivial")

    def add(self, a, b) -> str:
        return self._new_handle((self._value(a) + self._value(b)) % _MODULUS, "add")

    def sub(self, a, b) -> str:
        return self._new_handle((self._value(a) - self._value(b)) % _MODULUS, "sub")

    def ge(self, a, b) -> str:
        return self._new_handle(int(self._value(a) >= self._value(b)), "ge")

    def lt(self, a, b) -> str:
        return self._new_handle(int(self._value(a) < self._value(b)), "lt")

    def select(self, condition, if_true, if_false) -> str:
        # both branches are read so the call shape does not depend on the condition
        t, f = self._value(if_true), self._value(if_false)
        return self._new_handle(t if self._value(condition) else f, "select")

    def reveal(self, condition) -> bool:
        return bool(self._value(condition))

    # ═══════════════════════════════════════════════════════════════════════
    # INPUT VERIFICATION / ACL
    # ═══════════════════════════════════════════════════════════════════════

    def verify_input(self, handle, proof, contract_address: str,
                     submitter: str) -> str:
        try:
            handle = encode_handle(handle)
            proof = encode_proof(proof)
        except ValueError as e:
            raise InvalidProof(str(e))

        entry = self._inputs.get(proof)
        if entry is None:
            raise InvalidProof("Unknown input proof")
        contract, user, handles = entry
        if contract != contract_address.lower() or user != submitter.lower():
            raise InvalidProof("Input proof bound to another contract or submitter")
        if handle not in handles:
            raise InvalidProof(f"Handle {handle[:18]}... not covered by proof")
        if not hmac.compare_digest(self._bind(contract, user, handles), proof):
            raise InvalidProof("Input proof binding check failed")

        self.allow_transient(handle, contract_address)
        return handle

    def allow(self, handle, address: str) -> None:
        self._acl.setdefault(encode_handle(handle), set()).add(address.lower())

    def allow_transient(self, handle, address: str) -> None:
        self._transient.setdefault(encode_handle(handle), set()).add(address.lower())

    def is_allowed(self, handle, address: str) -> bool:
        handle = encode_handle(handle)
        if handle == ZERO_HANDLE:
            return True
        who = address.lower()
        return who in self._acl.get(handle, ()) or who in self._transient.get(handle, ())

    def end_transaction(self) -> None:
        self._transient.clear()
