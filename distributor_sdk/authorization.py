# Copyright (c) 2025 The Confidential Distributor developers
# Distributed under the MIT software license

"""
Confidential Distributor SDK - Authorization Protocol

Lets a balance owner recover the plaintext behind one ciphertext handle
through signed, time-boxed consent.

Flow (one attempt = one DecryptionSession):

    Idle
      │ generate_keypair()           fresh ephemeral keypair, no network
      ▼
    KeypairGenerated
      │ sign(signer, owner)          EIP-712 grant, OwnerMismatch if signer != owner
      ▼
    RequestSigned
      │ submit(handle, contract)     grant + handle sent to the decryption oracle
      ▼
    GrantSubmitted ──► PlaintextReceived | Rejected | Expired

Terminal states are final: a new attempt needs a new session (and a new
keypair). Keypairs and grants are never cached.
"""

import logging
import secrets
import time
from typing import Callable, List, Optional, Sequence

from eth_account import Account
from eth_account.messages import encode_typed_data
from eth_keys import keys

from .amounts import TOKEN_DECIMALS, format_amount
from .codec import is_zero_handle, normalize_address, same_address, encode_handle
from .dist_types import (
    DecryptionGrant, DecryptionState, EphemeralKeypair, HandleContractPair,
)
from .errors import (
    ERROR_MARKER, AuthorizationFailed, DistributorError, GrantExpired,
    OwnerMismatch, ProtocolStateError,
)

log = logging.getLogger(__name__)

DEFAULT_DURATION_DAYS = 10
DEFAULT_DECRYPTION_VERIFIER = "0xb6E160B1ff80D67Bfe90A85eE06Ce0A2613607D1"

EIP712_DOMAIN_NAME = "Decryption"
EIP712_DOMAIN_VERSION = "1"

EIP712_TYPES = {
    "EIP712Domain": [
        {"name": "name", "type": "string"},
        {"name": "version", "type": "string"},
        {"name": "chainId", "type": "uint256"},
        {"name": "verifyingContract", "type": "address"},
    ],
    "UserDecryptRequestVerification": [
        {"name": "publicKey", "type": "bytes"},
        {"name": "contractAddresses", "type": "address[]"},
        {"name": "startTimestamp", "type": "uint256"},
        {"name": "durationDays", "type": "uint256"},
        {"name": "extraData", "type": "bytes"},
    ],
}


# ═══════════════════════════════════════════════════════════════════════════════
# KEYPAIR / TYPED DATA
# ═══════════════════════════════════════════════════════════════════════════════

def generate_keypair() -> EphemeralKeypair:
    """Generate a fresh ephemeral secp256k1 keypair."""
    private_key = keys.PrivateKey(secrets.token_bytes(32))
    return EphemeralKeypair(
        public_key=private_key.public_key.to_hex(),
        private_key=private_key.to_hex(),
    )


def build_typed_data(public_key: str, contract_addresses: Sequence[str],
                     start_timestamp: int, duration_days: int,
                     chain_id: int, verifying_contract: str) -> dict:
    """
    Build the EIP-712 message a balance owner signs to authorize decryption.

    Args:
        public_key: Ephemeral public key (hex)
        contract_addresses: Contracts whose handles may be decrypted
        start_timestamp: Window start (unix seconds)
        duration_days: Window length in days
        chain_id: Gateway chain id (domain separator)
        verifying_contract: Decryption verifier address (domain separator)

    Returns:
        Full typed-data dict accepted by eth_account.messages.encode_typed_data
    """
    return {
        "types": EIP712_TYPES,
        "primaryType": "UserDecryptRequestVerification",
        "domain": {
            "name": EIP712_DOMAIN_NAME,
            "version": EIP712_DOMAIN_VERSION,
            "chainId": int(chain_id),
            "verifyingContract": normalize_address(verifying_contract),
        },
        "message": {
            "publicKey": bytes.fromhex(public_key[2:] if public_key.startswith("0x") else public_key),
            "contractAddresses": [normalize_address(a) for a in contract_addresses],
            "startTimestamp": int(start_timestamp),
            "durationDays": int(duration_days),
            "extraData": b"",
        },
    }


def sign_grant(signer, keypair: EphemeralKeypair, contract_addresses: Sequence[str],
               start_timestamp: int, duration_days: int, chain_id: int,
               verifying_contract: str) -> DecryptionGrant:
    """
    Sign a decryption grant with the owner's account.

    Args:
        signer: eth_account LocalAccount of the balance owner

    Returns:
        DecryptionGrant bound to signer.address
    """
    contracts = [normalize_address(a) for a in contract_addresses]
    typed = build_typed_data(
        keypair.public_key, contracts, start_timestamp, duration_days,
        chain_id, verifying_contract,
    )
    signed = signer.sign_message(encode_typed_data(full_message=typed))
    return DecryptionGrant(
        keypair=keypair,
        contract_addresses=contracts,
        start_timestamp=int(start_timestamp),
        duration_days=int(duration_days),
        signature="0x" + bytes(signed.signature).hex(),
        user_address=normalize_address(signer.address),
        chain_id=int(chain_id),
        verifying_contract=normalize_address(verifying_contract),
    )


def recover_grant_signer(grant: DecryptionGrant) -> str:
    """Recover the address that signed a grant (oracle-side check)."""
    typed = build_typed_data(
        grant.public_key, grant.contract_addresses, grant.start_timestamp,
        grant.duration_days, grant.chain_id, grant.verifying_contract,
    )
    return Account.recover_message(
        encode_typed_data(full_message=typed), signature=grant.signature
    )


# ═══════════════════════════════════════════════════════════════════════════════
# SESSION (one attempt)
# ═══════════════════════════════════════════════════════════════════════════════

class DecryptionSession:
    """
    Single-use decryption attempt.

    Usage:
        session = protocol.new_session()
        session.generate_keypair()
        session.sign(account, expected_owner=account.address)
        value = session.submit(handle, token_address)
    """

    TERMINAL = (
        DecryptionState.PLAINTEXT_RECEIVED,
        DecryptionState.REJECTED,
        DecryptionState.EXPIRED,
    )

    def __init__(self, service, contract_addresses: Sequence[str], chain_id: int,
                 verifying_contract: str = DEFAULT_DECRYPTION_VERIFIER,
                 duration_days: int = DEFAULT_DURATION_DAYS,
                 clock: Callable[[], float] = time.time):
        if not contract_addresses:
            raise ValueError("At least one contract address is required")
        self.service = service
        self.contract_addresses = [normalize_address(a) for a in contract_addresses]
        self.chain_id = chain_id
        self.verifying_contract = verifying_contract
        self.duration_days = duration_days
        self.clock = clock

        self.state = DecryptionState.IDLE
        self.keypair: Optional[EphemeralKeypair] = None
        self.grant: Optional[DecryptionGrant] = None

    def _expect(self, state: DecryptionState):
        if self.state != state:
            raise ProtocolStateError(
                f"Session is {self.state.value}, expected {state.value}"
            )

    def _check_window(self):
        if self.grant is not None and self.grant.is_expired(self.clock()):
            self.state = DecryptionState.EXPIRED
            raise GrantExpired(
                f"Decryption grant expired at {self.grant.expires_at}"
            )

    def generate_keypair(self) -> EphemeralKeypair:
        self._expect(DecryptionState.IDLE)
        self.keypair = generate_keypair()
        self.state = DecryptionState.KEYPAIR_GENERATED
        return self.keypair

    def sign(self, signer, expected_owner: str) -> DecryptionGrant:
        """
        Sign the grant. The window starts now.

        Raises:
            OwnerMismatch: signer is not the owner of the balance (no network call)
        """
        self._expect(DecryptionState.KEYPAIR_GENERATED)
        if not same_address(signer.address, expected_owner):
            self.state = DecryptionState.REJECTED
            raise OwnerMismatch("Connected wallet does not match balance owner")

        self.grant = sign_grant(
            signer, self.keypair, self.contract_addresses,
            start_timestamp=int(self.clock()),
            duration_days=self.duration_days,
            chain_id=self.chain_id,
            verifying_contract=self.verifying_contract,
        )
        self.state = DecryptionState.REQUEST_SIGNED
        log.debug(f"Grant signed by {self.grant.user_address} "
                  f"until {self.grant.expires_at}")
        return self.grant

    def submit(self, handle, contract_address: Optional[str] = None) -> int:
        """
        Submit the grant for one handle.

        Returns:
            Plaintext value

        Raises:
            GrantExpired: window elapsed (before or after the oracle call)
            AuthorizationFailed: oracle rejected the grant
            NetworkFailure: oracle unreachable
        """
        self._expect(DecryptionState.REQUEST_SIGNED)
        handle = encode_handle(handle)
        contract = normalize_address(contract_address or self.contract_addresses[0])
        self._check_window()

        self.state = DecryptionState.GRANT_SUBMITTED
        if is_zero_handle(handle):
            self.state = DecryptionState.PLAINTEXT_RECEIVED
            return 0

        try:
            values = self.service.decrypt_batch(
                [HandleContractPair(handle, contract)], self.grant
            )
        except GrantExpired:
            self.state = DecryptionState.EXPIRED
            raise
        except AuthorizationFailed:
            self.state = DecryptionState.REJECTED
            raise

        self._check_window()
        if handle not in values:
            self.state = DecryptionState.REJECTED
            raise AuthorizationFailed("Oracle returned no value for handle")

        self.state = DecryptionState.PLAINTEXT_RECEIVED
        return int(values[handle])

    def run(self, signer, expected_owner: str, handle,
            contract_address: Optional[str] = None) -> int:
        """Drive the whole attempt: keypair, signature, submission."""
        self.generate_keypair()
        self.sign(signer, expected_owner)
        return self.submit(handle, contract_address)


# ═══════════════════════════════════════════════════════════════════════════════
# PROTOCOL (session factory)
# ═══════════════════════════════════════════════════════════════════════════════

class AuthorizationProtocol:
    """Creates one fresh DecryptionSession per attempt."""

    def __init__(self, service, contract_addresses: List[str], chain_id: int,
                 verifying_contract: str = DEFAULT_DECRYPTION_VERIFIER,
                 duration_days: int = DEFAULT_DURATION_DAYS,
                 clock: Callable[[], float] = time.time,
                 decimals: int = TOKEN_DECIMALS):
        self.service = service
        self.contract_addresses = list(contract_addresses)
        self.chain_id = chain_id
        self.verifying_contract = verifying_contract
        self.duration_days = duration_days
        self.clock = clock
        self.decimals = decimals

    def new_session(self) -> DecryptionSession:
        return DecryptionSession(
            self.service, self.contract_addresses, self.chain_id,
            verifying_contract=self.verifying_contract,
            duration_days=self.duration_days,
            clock=self.clock,
        )

    def decrypt(self, signer, owner: str, handle,
                contract_address: Optional[str] = None) -> int:
        """Recover the plaintext of `handle` owned by `owner`."""
        return self.new_session().run(signer, owner, handle, contract_address)

    def decrypt_for_display(self, signer, owner: str, handle,
                            contract_address: Optional[str] = None) -> str:
        """
        Decrypt and format for display.

        Returns:
            Formatted amount, or the error marker "Error" on any failure.
            Never a stale or zero value in place of a failure.
        """
        try:
            value = self.decrypt(signer, owner, handle, contract_address)
            return format_amount(value, self.decimals)
        except DistributorError as e:
            log.warning(f"Decryption failed ({e.kind}): {e.message}")
            return ERROR_MARKER
