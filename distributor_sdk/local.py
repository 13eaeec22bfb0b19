# Copyright (c) 2025 The Confidential Distributor developers
# Distributed under the MIT software license

"""
Confidential Distributor SDK - Local Deployment

In-process stand-in for a chain deployment: MockCoprocessor + ledger +
distributor, bootstrapped the way the deployment script does it (deployer
is the minter, the distributor is funded with 1,000,000 raw units).

LocalSettlement exposes the same surface as SettlementClient so the service
layer, HTTP API and CLI run unchanged against it.
"""

import itertools
import logging
import time
from dataclasses import dataclass
from typing import Callable, List

from web3 import Web3

from .codec import normalize_address
from .dist_types import BatchReceipt, CiphertextBundle
from .distributor import BatchDistributor
from .encryption import ArithmeticPolicy
from .ledger import ConfidentialLedger
from .mock_coprocessor import LOCAL_CHAIN_ID, MockCoprocessor
from .settlement import PendingTransaction

log = logging.getLogger(__name__)

DEFAULT_INITIAL_MINT = 1_000_000


def derive_address(label: str, deployer: str) -> str:
    """Deterministic contract address for a local deployment."""
    digest = bytes(Web3.keccak(text=f"{label}:{deployer.lower()}"))
    return Web3.to_checksum_address("0x" + digest[-20:].hex())


@dataclass
class LocalDeployment:
    deployer: str
    backend: MockCoprocessor
    ledger: ConfidentialLedger
    distributor: BatchDistributor

    @property
    def token_address(self) -> str:
        return self.ledger.address

    @property
    def distributor_address(self) -> str:
        return self.distributor.address

    @property
    def chain_id(self) -> int:
        return self.backend.chain_id


def bootstrap_local(deployer: str, initial_mint: int = DEFAULT_INITIAL_MINT,
                    policy: ArithmeticPolicy = ArithmeticPolicy.REVERT,
                    open_mint: bool = True,
                    clock: Callable[[], float] = time.time,
                    chain_id: int = LOCAL_CHAIN_ID) -> LocalDeployment:
    """
    Deploy token + distributor in-process and fund the distributor.

    Args:
        deployer: Deploying account (initial minter)
        initial_mint: Raw amount minted to the distributor (0 = none)
        policy: Arithmetic policy of the mock coprocessor
        open_mint: Let any account use the faucet mint

    Returns:
        LocalDeployment
    """
    deployer = normalize_address(deployer, allow_zero=False)
    backend = MockCoprocessor(chain_id=chain_id, policy=policy, clock=clock)
    ledger = ConfidentialLedger(
        backend, derive_address("ConfidentialETH", deployer), owner=deployer,
        open_mint=open_mint,
    )
    distributor = BatchDistributor(ledger, derive_address("Distributor", deployer))
    log.info(f"ConfidentialETH: {ledger.address}")
    log.info(f"Distributor: {distributor.address}")

    if initial_mint:
        ledger.mint(deployer, distributor.address, initial_mint)
        log.info(f"Minted {initial_mint} to Distributor")

    return LocalDeployment(deployer=deployer, backend=backend, ledger=ledger,
                           distributor=distributor)


class LocalSettlement:
    """
    SettlementClient surface over a LocalDeployment.

    Mutations execute when submitted; definite failures (InsufficientBalance,
    InvalidProof, ...) raise immediately, like a failed simulation would.
    """

    _nonce = itertools.count(1)

    def __init__(self, deployment: LocalDeployment, sender: str):
        self.deployment = deployment
        self.sender = normalize_address(sender, allow_zero=False)

    def _confirmed(self, description: str, receipt) -> PendingTransaction:
        seed = f"{description}:{self.sender}:{next(self._nonce)}"
        tx_hash = Web3.to_hex(Web3.keccak(text=seed))
        return PendingTransaction(tx_hash=tx_hash, description=description,
                                  receipt=receipt, waiter=lambda h, t: receipt)

    def token_address(self) -> str:
        return self.deployment.distributor.token_address()

    def distributor_address(self) -> str:
        return self.deployment.distributor_address

    def confidential_balance_of(self, account: str) -> str:
        return self.deployment.ledger.confidential_balance_of(normalize_address(account))

    def mint(self, to: str, amount: int) -> PendingTransaction:
        handle = self.deployment.ledger.mint(self.sender, to, int(amount))
        return self._confirmed(f"mint {to}", {"status": 1, "balance": handle})

    def batch_distribute_encrypted(self, recipients: List[str],
                                   bundle: CiphertextBundle) -> PendingTransaction:
        receipt: BatchReceipt = self.deployment.distributor.batch_distribute_encrypted(
            self.sender, recipients, bundle
        )
        return self._confirmed(f"batch of {len(receipt)}", receipt)
