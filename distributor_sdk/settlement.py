# Copyright (c) 2025 The Confidential Distributor developers
# Distributed under the MIT software license

"""
Confidential Distributor SDK - Settlement Client

web3 wrapper around the two deployed contracts:

    ConfidentialETH   mint(address,uint64), confidentialBalanceOf(address)
    Distributor       batchDistributeEncrypted(address[],bytes32[],bytes),
                      tokenAddress()

Every mutation is simulated first (estimate_gas). A revert during
simulation is definite and is decoded into the error taxonomy. Once a
transaction may have been broadcast, transport failures are reported as
ambiguous NetworkFailure: re-query state before retrying.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import requests
from eth_account import Account
from web3 import Web3
from web3.exceptions import ContractLogicError, TimeExhausted, Web3Exception

from .codec import decode_handle, decode_proof, encode_handle, normalize_address
from .config import Config, mask_secret
from .dist_types import CiphertextBundle, TxStatus
from .errors import (
    DistributorError, LengthMismatch, NetworkFailure, TransactionReverted,
    Unauthorized, error_from_kind,
)

log = logging.getLogger(__name__)

_TRANSPORT_ERRORS = (Web3Exception, ValueError, requests.exceptions.RequestException,
                     ConnectionError)

# =============================================================================
# CONTRACT ABIs
# =============================================================================

_CUSTOM_ERRORS = [
    "LengthMismatch", "InvalidProof", "InsufficientBalance", "Overflow",
    "Unauthorized", "InvalidAddress",
]

_ERROR_ABI = [{"type": "error", "name": name, "inputs": []} for name in _CUSTOM_ERRORS]

CONFIDENTIAL_TOKEN_ABI = [
    {
        "type": "function", "name": "mint", "stateMutability": "nonpayable",
        "inputs": [
            {"name": "to", "type": "address"},
            {"name": "amount", "type": "uint64"},
        ],
        "outputs": [],
    },
    {
        "type": "function", "name": "confidentialBalanceOf", "stateMutability": "view",
        "inputs": [{"name": "account", "type": "address"}],
        "outputs": [{"name": "", "type": "bytes32"}],
    },
    {
        "type": "function", "name": "confidentialTotalSupply", "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "bytes32"}],
    },
] + _ERROR_ABI

DISTRIBUTOR_ABI = [
    {
        "type": "function", "name": "batchDistributeEncrypted",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "recipients", "type": "address[]"},
            {"name": "amounts", "type": "bytes32[]"},
            {"name": "inputProof", "type": "bytes"},
        ],
        "outputs": [],
    },
    {
        "type": "function", "name": "tokenAddress", "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "address"}],
    },
] + _ERROR_ABI

ERROR_SELECTORS: Dict[str, str] = {
    "0x" + bytes(Web3.keccak(text=f"{name}()"))[:4].hex(): name
    for name in _CUSTOM_ERRORS
}


def decode_revert(error: ContractLogicError) -> DistributorError:
    """Map a simulated revert to the error taxonomy."""
    data = getattr(error, "data", None)
    if isinstance(data, dict):
        data = data.get("data")
    if isinstance(data, str) and data[:10].lower() in ERROR_SELECTORS:
        kind = ERROR_SELECTORS[data[:10].lower()]
        return error_from_kind(kind, f"Reverted: {kind}")

    message = getattr(error, "message", None) or str(error)
    for name in _CUSTOM_ERRORS:
        if f"{name}(" in message or f"'{name}'" in message:
            return error_from_kind(name, f"Reverted: {name}")
    return TransactionReverted(message)


# =============================================================================
# PENDING TRANSACTION
# =============================================================================

@dataclass
class PendingTransaction:
    """
    Submitted mutation. status is "pending" until wait() returns.

    Usage:
        tx = client.mint(alice, 1_000_000)
        print(tx.tx_hash)     # pending
        tx.wait()             # confirmed, or raises
    """
    tx_hash: str
    description: str = ""
    status: TxStatus = TxStatus.PENDING
    receipt: Optional[Any] = None
    waiter: Optional[Callable[[str, Optional[float]], Any]] = field(default=None, repr=False)

    @property
    def confirmed(self) -> bool:
        return self.status == TxStatus.CONFIRMED

    def wait(self, timeout: Optional[float] = None) -> "PendingTransaction":
        """
        Block until the transaction is confirmed.

        Raises:
            TransactionReverted: mined with status 0
            NetworkFailure: receipt not obtained (ambiguous)
        """
        if self.confirmed:
            return self
        if self.waiter is not None:
            self.receipt = self.waiter(self.tx_hash, timeout)
        self.status = TxStatus.CONFIRMED
        return self


# =============================================================================
# SETTLEMENT CLIENT
# =============================================================================

class SettlementClient:
    """
    Contract wrapper for a deployed token + distributor pair.

    Usage:
        client = SettlementClient.from_config(Config.from_env())
        handle = client.confidential_balance_of(alice)
        client.mint(alice, 1_000_000).wait()
    """

    def __init__(self, w3: Web3, token_address: str, distributor_address: str,
                 account=None, receipt_timeout: int = 120):
        self.w3 = w3
        self.account = account
        self.receipt_timeout = receipt_timeout
        self.token = w3.eth.contract(
            address=normalize_address(token_address), abi=CONFIDENTIAL_TOKEN_ABI
        )
        self.distributor = w3.eth.contract(
            address=normalize_address(distributor_address), abi=DISTRIBUTOR_ABI
        )

    @classmethod
    def from_config(cls, config: Config) -> "SettlementClient":
        if config.is_local:
            raise ValueError("TOKEN_ADDRESS and DISTRIBUTOR_ADDRESS are required")
        w3 = Web3(Web3.HTTPProvider(
            config.rpc_url, request_kwargs={"timeout": config.request_timeout}
        ))
        account = Account.from_key(config.private_key) if config.private_key else None
        log.info(f"Settlement on {config.network} via {config.masked()['rpc_url']}")
        return cls(w3, config.token_address, config.distributor_address,
                   account=account, receipt_timeout=config.receipt_timeout)

    @property
    def sender(self) -> str:
        if self.account is None:
            raise Unauthorized("No signing key configured (set PRIVATE_KEY)")
        return self.account.address

    # ═══════════════════════════════════════════════════════════════════════
    # READS
    # ═══════════════════════════════════════════════════════════════════════

    def _read(self, call):
        try:
            return call.call()
        except ContractLogicError as e:
            raise decode_revert(e)
        except _TRANSPORT_ERRORS as e:
            raise NetworkFailure(f"Read failed: {e}")

    def token_address(self) -> str:
        return normalize_address(self._read(self.distributor.functions.tokenAddress()))

    def distributor_address(self) -> str:
        return self.distributor.address

    def confidential_balance_of(self, account: str) -> str:
        account = normalize_address(account)
        return encode_handle(self._read(self.token.functions.confidentialBalanceOf(account)))

    # ═══════════════════════════════════════════════════════════════════════
    # WRITES
    # ═══════════════════════════════════════════════════════════════════════

    def _transact(self, call, description: str) -> PendingTransaction:
        sender = self.sender

        try:
            gas = call.estimate_gas({"from": sender})
        except ContractLogicError as e:
            raise decode_revert(e)
        except _TRANSPORT_ERRORS as e:
            raise NetworkFailure(f"Simulation failed: {e}")

        try:
            tx = call.build_transaction({
                "from": sender,
                "chainId": self.w3.eth.chain_id,
                "gas": gas + gas // 5,
                "nonce": self.w3.eth.get_transaction_count(sender, "pending"),
            })
            signed = self.account.sign_transaction(tx)
        except _TRANSPORT_ERRORS as e:
            raise NetworkFailure(f"Could not build transaction: {e}")

        try:
            tx_hash = self.w3.eth.send_raw_transaction(signed.raw_transaction)
        except _TRANSPORT_ERRORS as e:
            raise NetworkFailure(f"Submission failed, transaction may be in flight: {e}",
                                 ambiguous=True)

        tx_hash = Web3.to_hex(tx_hash)
        log.info(f"{description}: submitted {mask_secret(tx_hash, 10, 6)}")
        return PendingTransaction(tx_hash=tx_hash, description=description,
                                  waiter=self._wait_receipt)

    def _wait_receipt(self, tx_hash: str, timeout: Optional[float] = None):
        try:
            receipt = self.w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=timeout or self.receipt_timeout
            )
        except TimeExhausted:
            raise NetworkFailure(f"No receipt for {tx_hash} yet", ambiguous=True)
        except _TRANSPORT_ERRORS as e:
            raise NetworkFailure(f"Receipt query failed for {tx_hash}: {e}",
                                 ambiguous=True)

        if receipt["status"] != 1:
            raise TransactionReverted(f"Transaction {tx_hash} reverted", tx_hash=tx_hash)
        log.info(f"Confirmed {mask_secret(tx_hash, 10, 6)} in block {receipt['blockNumber']}")
        return receipt

    def mint(self, to: str, amount: int) -> PendingTransaction:
        to = normalize_address(to, allow_zero=False)
        return self._transact(self.token.functions.mint(to, int(amount)), f"mint {to}")

    def batch_distribute_encrypted(self, recipients: List[str],
                                   bundle: CiphertextBundle) -> PendingTransaction:
        if len(recipients) != len(bundle.handles):
            raise LengthMismatch(
                f"{len(recipients)} recipients but {len(bundle.handles)} ciphertexts"
            )
        recipients = [normalize_address(r, allow_zero=False) for r in recipients]
        call = self.distributor.functions.batchDistributeEncrypted(
            recipients,
            [decode_handle(h) for h in bundle.handles],
            decode_proof(bundle.proof),
        )
        return self._transact(call, f"batch of {len(recipients)}")
