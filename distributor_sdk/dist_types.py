# Copyright (c) 2025 The Confidential Distributor developers
# Distributed under the MIT software license

"""
Confidential Distributor SDK - Data Types

Ciphertext bundles, decryption grants, ledger records and action statuses.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional
import json
import time

from .codec import encode_handle, encode_proof

SECONDS_PER_DAY = 24 * 60 * 60


class TxStatus(Enum):
    """Settlement transaction phase"""
    PENDING = "pending"
    CONFIRMED = "confirmed"


class DecryptionState(Enum):
    """Authorization protocol state (one per decryption attempt)"""
    IDLE = "idle"
    KEYPAIR_GENERATED = "keypair_generated"
    REQUEST_SIGNED = "request_signed"
    GRANT_SUBMITTED = "grant_submitted"
    PLAINTEXT_RECEIVED = "plaintext_received"
    REJECTED = "rejected"
    EXPIRED = "expired"


@dataclass
class CiphertextBundle:
    """
    N ciphertext handles plus one validity proof covering all of them.

    Produced by a single encryption call for one (contract, submitter) pair.
    Handles are positional: handles[i] is the amount for recipients[i].
    """
    handles: List[str]
    proof: str

    def __post_init__(self):
        self.handles = [encode_handle(h) for h in self.handles]
        self.proof = encode_proof(self.proof)

    def __len__(self) -> int:
        return len(self.handles)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "handles": list(self.handles),
            "inputProof": self.proof,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CiphertextBundle":
        """Create bundle from dictionary ("inputProof" or "proof" key)."""
        proof = data.get("inputProof", data.get("proof"))
        if proof is None:
            raise ValueError("Bundle has no input proof")
        return cls(handles=list(data.get("handles", [])), proof=proof)

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)

    @classmethod
    def from_json(cls, json_str: str) -> "CiphertextBundle":
        return cls.from_dict(json.loads(json_str))


@dataclass
class HandleContractPair:
    """A handle together with the contract that holds decryption rights on it."""
    handle: str
    contract_address: str

    def __post_init__(self):
        self.handle = encode_handle(self.handle)

    def to_dict(self) -> dict:
        return {"handle": self.handle, "contractAddress": self.contract_address}


@dataclass(frozen=True)
class EphemeralKeypair:
    """Per-attempt asymmetric keypair. Never cached, never persisted."""
    public_key: str
    private_key: str = field(repr=False)


@dataclass
class DecryptionGrant:
    """
    Time-boxed, signature-authorized decryption request.

    Window: [start_timestamp, start_timestamp + duration_days * 86400)

    The signature covers {public_key, contract_addresses, window} as EIP-712
    typed data under the (chain_id, verifying_contract) domain. Only the
    public half of the keypair ever leaves the client.
    """
    keypair: EphemeralKeypair
    contract_addresses: List[str]
    start_timestamp: int
    duration_days: int
    signature: str
    user_address: str
    chain_id: int
    verifying_contract: str

    @property
    def public_key(self) -> str:
        return self.keypair.public_key

    @property
    def expires_at(self) -> int:
        return self.start_timestamp + self.duration_days * SECONDS_PER_DAY

    def is_expired(self, now: Optional[float] = None) -> bool:
        """Check if the validity window has elapsed."""
        if now is None:
            now = time.time()
        return now >= self.expires_at

    def to_request(self) -> dict:
        """Public part of the grant as sent to the decryption oracle."""
        return {
            "publicKey": self.keypair.public_key,
            "contractAddresses": list(self.contract_addresses),
            "startTimestamp": self.start_timestamp,
            "durationDays": self.duration_days,
            "signature": self.signature,
            "userAddress": self.user_address,
            "chainId": self.chain_id,
        }


@dataclass
class TransferRecord:
    """Ledger event. Carries handles only, never plaintext."""
    kind: str               # "mint" or "transfer"
    sender: str
    recipient: str
    amount_handle: str
    sender_balance: str     # new handle ("" for mints)
    recipient_balance: str  # new handle
    timestamp: int = field(default_factory=lambda: int(time.time()))

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "sender": self.sender,
            "recipient": self.recipient,
            "amount_handle": self.amount_handle,
            "sender_balance": self.sender_balance,
            "recipient_balance": self.recipient_balance,
            "timestamp": self.timestamp,
        }


@dataclass
class BatchReceipt:
    """Result of a successful batch distribution."""
    distributor: str
    submitter: str
    recipients: List[str] = field(default_factory=list)
    amount_handles: List[str] = field(default_factory=list)
    balance_handles: List[str] = field(default_factory=list)
    distributor_balance: str = ""

    def __len__(self) -> int:
        return len(self.recipients)

    def to_dict(self) -> dict:
        return {
            "distributor": self.distributor,
            "submitter": self.submitter,
            "recipients": list(self.recipients),
            "amount_handles": list(self.amount_handles),
            "balance_handles": list(self.balance_handles),
            "distributor_balance": self.distributor_balance,
        }


@dataclass
class ActionStatus:
    """
    Outcome of a mutating display-surface action.

    status: "pending", "confirmed", or an error kind (e.g. "InsufficientBalance")
    """
    status: str
    tx_hash: str = ""
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.status == TxStatus.CONFIRMED.value

    @property
    def is_error(self) -> bool:
        return self.status not in (TxStatus.PENDING.value, TxStatus.CONFIRMED.value)

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "tx_hash": self.tx_hash,
            "message": self.message,
        }
