# Copyright (c) 2025 The Confidential Distributor developers
# Distributed under the MIT software license

"""
Confidential Distributor SDK - Batch Distributor

Debits the distributor's own encrypted balance and credits N recipients in
one atomic unit of work.

Validation order (nothing is mutated until all of it passes):
    1. len(recipients) == len(handles)      else LengthMismatch
    2. every recipient is a valid address   else InvalidAddress
    3. every handle is covered by the proof
       for (distributor, submitter)         else InvalidProof

Execution:
    for i in 0..N-1 (recipient order): ledger.transfer_encrypted(self, r[i], h[i])
    any InsufficientBalance rolls the whole batch back.
    Under CLAMP and WRAP every amount is first gated on one encrypted check of the
    batch total, so an underfunded batch moves nothing.

The distributor never mints: it must be funded beforehand.
"""

import logging
from typing import Optional, Sequence, Union

from .codec import encode_handle, normalize_address
from .config import mask_secret
from .dist_types import BatchReceipt, CiphertextBundle
from .encryption import ArithmeticPolicy
from .errors import InvalidProof, LengthMismatch
from .ledger import ConfidentialLedger

log = logging.getLogger(__name__)


class BatchDistributor:
    """
    Batch distribution contract bound to one confidential ledger.

    Usage:
        distributor = BatchDistributor(ledger, distributor_address)
        bundle = fhe.encrypt_batch(distributor.address, submitter, [100, 200])
        receipt = distributor.batch_distribute_encrypted(
            submitter, [alice, bob], bundle)
    """

    def __init__(self, ledger: ConfidentialLedger, address: str):
        self.ledger = ledger
        self.address = normalize_address(address, allow_zero=False)

    def token_address(self) -> str:
        """Ledger address this distributor pays out of."""
        return self.ledger.address

    def _gate_on_total(self, handles):
        """
        Replace every amount with select(funded, amount, 0), where `funded`
        is the encrypted check that the whole batch fits the balance and its
        sum does not wrap. Either all transfers move their amount or none do.
        """
        fhe = self.ledger.backend
        total = fhe.trivial_encrypt(0)
        wrapped = fhe.trivial_encrypt(0)
        for handle in handles:
            running = fhe.add(total, handle)
            wrapped = fhe.select(fhe.lt(running, total), fhe.trivial_encrypt(1), wrapped)
            total = running

        balance = self.ledger.confidential_balance_of(self.address)
        funded = fhe.select(wrapped, fhe.trivial_encrypt(0), fhe.ge(balance, total))

        zero = fhe.trivial_encrypt(0)
        gated = []
        for handle in handles:
            amount = fhe.select(funded, handle, zero)
            fhe.allow_transient(amount, self.address)
            fhe.allow_transient(amount, self.ledger.address)
            gated.append(amount)
        return gated

    def batch_distribute_encrypted(self, submitter: str, recipients: Sequence[str],
                                   ciphertexts: Union[CiphertextBundle, Sequence[str]],
                                   proof: Optional[str] = None) -> BatchReceipt:
        """
        Distribute encrypted amounts to recipients atomically.

        Args:
            submitter: Transaction sender (the proof must be bound to it)
            recipients: N recipient addresses
            ciphertexts: CiphertextBundle, or a list of N handles with `proof`
            proof: Input proof (only when ciphertexts is a plain handle list)

        Returns:
            BatchReceipt with the consumed amount handles and new balance handles

        Raises:
            LengthMismatch, InvalidAddress, InvalidProof: validation, no state change
            InsufficientBalance: cumulative debit exceeds balance, no state change
        """
        if isinstance(ciphertexts, CiphertextBundle):
            handles = list(ciphertexts.handles)
            proof = ciphertexts.proof if proof is None else proof
        else:
            handles = list(ciphertexts)

        recipients = list(recipients)
        if len(recipients) != len(handles):
            raise LengthMismatch(
                f"{len(recipients)} recipients but {len(handles)} ciphertexts"
            )

        submitter = normalize_address(submitter, allow_zero=False)
        recipients = [normalize_address(r, allow_zero=False) for r in recipients]
        receipt = BatchReceipt(distributor=self.address, submitter=submitter)

        if not recipients:
            log.info("Empty batch, nothing to distribute")
            receipt.distributor_balance = self.ledger.confidential_balance_of(self.address)
            return receipt

        fhe = self.ledger.backend
        try:
            verified = []
            for index, handle in enumerate(handles):
                try:
                    handle = encode_handle(handle)
                except ValueError:
                    raise InvalidProof(f"Ciphertext {index} is not a valid handle")
                handle = fhe.verify_input(handle, proof, self.address, submitter)
                fhe.allow_transient(handle, self.ledger.address)
                verified.append(handle)

            if fhe.policy != ArithmeticPolicy.REVERT:
                verified = self._gate_on_total(verified)

            with self.ledger.atomic():
                for recipient, handle in zip(recipients, verified):
                    new_balance = self.ledger.transfer_encrypted(
                        self.address, recipient, handle
                    )
                    receipt.recipients.append(recipient)
                    receipt.amount_handles.append(handle)
                    receipt.balance_handles.append(new_balance)
        finally:
            fhe.end_transaction()

        receipt.distributor_balance = self.ledger.confidential_balance_of(self.address)
        log.info(f"Batch of {len(receipt)} distributed by {submitter}, "
                 f"distributor balance {mask_secret(receipt.distributor_balance)}")
        return receipt
