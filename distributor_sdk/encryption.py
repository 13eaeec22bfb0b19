# Copyright (c) 2025 The Confidential Distributor developers
# Distributed under the MIT software license

"""
Confidential Distributor SDK - Encryption Service Interfaces

The homomorphic domain is injected. The ledger and distributor depend only
on these interfaces; a plain-arithmetic mock backs local mode and tests, the
relayer client backs production decryption and input encryption.

    EncryptionService     encrypt_batch / decrypt_batch (client side)
    CoprocessorBackend    + homomorphic ops, input verification, ACL
                          (what the ledger runs against)
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Dict, List, Sequence

from .dist_types import CiphertextBundle, DecryptionGrant, HandleContractPair


class ArithmeticPolicy(Enum):
    """
    Over/underflow semantics of the backend.

    REVERT: failed check raises InsufficientBalance / Overflow, unit rolls back
    CLAMP:  failed check silently transfers or mints zero
    WRAP:   modular 2^64 arithmetic, no check
    """
    REVERT = "revert"
    CLAMP = "clamp"
    WRAP = "wrap"


class EncryptionService(ABC):
    """Client-side view of the coprocessor."""

    @abstractmethod
    def encrypt_batch(self, contract_address: str, submitter: str,
                      values: Sequence[int]) -> CiphertextBundle:
        """
        Encrypt an ordered list of uint64 values in one round trip.

        Args:
            contract_address: Contract that will consume the handles
            submitter: Account that will submit the transaction

        Returns:
            CiphertextBundle with len(values) handles and one proof bound to
            (contract_address, submitter)

        Raises:
            OutOfRange: a value outside [0, 2^64 - 1]
            NetworkFailure: coprocessor unreachable
        """

    @abstractmethod
    def decrypt_batch(self, pairs: Sequence[HandleContractPair],
                      grant: DecryptionGrant) -> Dict[str, int]:
        """
        Exchange a signed decryption grant for plaintext values.

        Returns:
            {handle: plaintext}

        Raises:
            AuthorizationFailed: bad signature, wrong owner, contract not allowed
            GrantExpired: validity window elapsed
            NetworkFailure: oracle unreachable
        """


class CoprocessorBackend(EncryptionService):
    """
    Homomorphic surface consumed by the confidential ledger.

    Handles are canonical hex strings (see codec.encode_handle). Boolean
    results of comparisons are handles too; only reveal() turns a boolean
    handle into a Python bool, which the ledger uses to decide whether a
    REVERT-policy unit of work must roll back.
    """

    policy: ArithmeticPolicy = ArithmeticPolicy.REVERT

    @abstractmethod
    def trivial_encrypt(self, value: int) -> str:
        """Encrypt a public constant."""

    @abstractmethod
    def add(self, a: str, b: str) -> str:
        """a + b mod 2^64"""

    @abstractmethod
    def sub(self, a: str, b: str) -> str:
        """a - b mod 2^64"""

    @abstractmethod
    def ge(self, a: str, b: str) -> str:
        """Encrypted boolean a >= b"""

    @abstractmethod
    def lt(self, a: str, b: str) -> str:
        """Encrypted boolean a < b"""

    @abstractmethod
    def select(self, condition: str, if_true: str, if_false: str) -> str:
        """Encrypted conditional (both branches are always evaluated)."""

    @abstractmethod
    def reveal(self, condition: str) -> bool:
        """Publicly decrypt an encrypted boolean."""

    @abstractmethod
    def verify_input(self, handle: str, proof: str, contract_address: str,
                     submitter: str) -> str:
        """
        Check that `handle` is covered by `proof` for (contract, submitter).

        Returns:
            The verified handle, transiently allowed for contract_address

        Raises:
            InvalidProof
        """

    @abstractmethod
    def allow(self, handle: str, address: str) -> None:
        """Persistently allow `address` to use and decrypt `handle`."""

    @abstractmethod
    def allow_transient(self, handle: str, address: str) -> None:
        """Allow `address` to use `handle` until end_transaction()."""

    @abstractmethod
    def is_allowed(self, handle: str, address: str) -> bool:
        """Check the ACL (persistent or transient)."""

    def end_transaction(self) -> None:
        """Drop transient permissions."""

    def allow_many(self, handle: str, addresses: List[str]) -> None:
        for address in addresses:
            self.allow(handle, address)
