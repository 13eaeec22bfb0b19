# Copyright (c) 2025 The Confidential Distributor developers
# Distributed under the MIT software license

"""
Confidential Distributor SDK - Service Facade

Display-surface operations shared by the HTTP API and the CLI:

    own_balance_handle()          read
    balance_handle(address)       read
    decrypt_balance(address)      read, "Error" marker on failure
    request_faucet(amount_text)   mutation -> ActionStatus
    distribute(rows)              mutation -> ActionStatus

Mutations report "pending" (with tx hash) through `on_status`, then
"confirmed" or an error kind. Core errors are converted to statuses here
and nowhere below.
"""

import logging
import time
from typing import Callable, Iterable, List, Optional, Tuple, Union

from eth_account import Account

from .amounts import (
    MAX_DISPLAY_AMOUNT, TOKEN_DECIMALS, format_amount, parse_amount_rows,
    parse_positive_amount,
)
from .authorization import AuthorizationProtocol
from .codec import normalize_address
from .config import LOCAL_DEV_KEYS, Config, mask_secret
from .dist_types import ActionStatus, TxStatus
from .encryption import EncryptionService
from .errors import (
    ERROR_MARKER, AmountParseError, DistributorError, InvalidAddress,
    LengthMismatch, NetworkFailure,
)
from .local import LocalDeployment, LocalSettlement, bootstrap_local
from .relayer import RelayerEncryptionService
from .settlement import SettlementClient

log = logging.getLogger(__name__)

Row = Union[Tuple[str, str], dict]
StatusCallback = Callable[[ActionStatus], None]


def _row_fields(row: Row) -> Tuple[str, str]:
    if isinstance(row, dict):
        return row.get("address", ""), str(row.get("amount", ""))
    address, amount = row
    return address, str(amount)


class DistributorService:
    """
    Facade over settlement, encryption and the authorization protocol.

    Usage:
        service = DistributorService.local(Account.from_key(key))
        status = service.distribute([(alice, "0.0001"), (bob, "0.0002")])
        service.decrypt_balance(service.address)
    """

    def __init__(self, settlement, encryption: EncryptionService, signer,
                 authorization: AuthorizationProtocol,
                 decimals: int = TOKEN_DECIMALS,
                 receipt_timeout: Optional[float] = None,
                 network: str = "local"):
        self.settlement = settlement
        self.encryption = encryption
        self.signer = signer
        self.authorization = authorization
        self.decimals = decimals
        self.receipt_timeout = receipt_timeout
        self.network = network

    # =========================================================================
    # CONSTRUCTION
    # =========================================================================

    @classmethod
    def local(cls, signer, deployment: Optional[LocalDeployment] = None,
              clock: Callable[[], float] = time.time) -> "DistributorService":
        """In-process deployment with the signer as deployer."""
        if deployment is None:
            deployment = bootstrap_local(signer.address, clock=clock)
        authorization = AuthorizationProtocol(
            deployment.backend,
            [deployment.token_address, deployment.distributor_address],
            chain_id=deployment.chain_id,
            verifying_contract=deployment.backend.verifying_contract,
            clock=clock,
        )
        return cls(LocalSettlement(deployment, signer.address), deployment.backend,
                   signer, authorization)

    @classmethod
    def from_config(cls, config: Config) -> "DistributorService":
        """
        Build from configuration.

        Without TOKEN_ADDRESS/DISTRIBUTOR_ADDRESS an in-process deployment is
        bootstrapped (development keys unless PRIVATE_KEY is set).
        """
        log.info(f"Config: {config.masked()}")
        if config.is_local:
            signer = Account.from_key(config.private_key or LOCAL_DEV_KEYS[0])
            return cls.local(signer)

        if not config.private_key:
            raise ValueError("PRIVATE_KEY is required for a deployed network")
        if not config.relayer_url:
            raise ValueError("RELAYER_URL is required for a deployed network")

        settlement = SettlementClient.from_config(config)
        encryption = RelayerEncryptionService(config.relayer_url,
                                              timeout=config.request_timeout)
        authorization = AuthorizationProtocol(
            encryption,
            [config.token_address, config.distributor_address],
            chain_id=config.decryption_chain_id,
            verifying_contract=config.decryption_verifier,
            duration_days=config.duration_days,
            decimals=config.token_decimals,
        )
        return cls(settlement, encryption, settlement.account, authorization,
                   decimals=config.token_decimals,
                   receipt_timeout=config.receipt_timeout,
                   network=config.network)

    @property
    def address(self) -> str:
        return self.signer.address

    @property
    def token_address(self) -> str:
        return self.settlement.token_address()

    @property
    def distributor_address(self) -> str:
        return self.settlement.distributor_address()

    # =========================================================================
    # QUERIES
    # =========================================================================

    def own_balance_handle(self) -> str:
        return self.settlement.confidential_balance_of(self.address)

    def balance_handle(self, address: str) -> str:
        return self.settlement.confidential_balance_of(normalize_address(address))

    def decrypt_balance(self, address: Optional[str] = None) -> str:
        """
        Decrypt a balance for display.

        Returns:
            Formatted amount, or "Error" (never a stale or zero value)
        """
        owner = address or self.address
        try:
            handle = self.balance_handle(owner)
            token = self.token_address
        except DistributorError as e:
            log.warning(f"Balance lookup failed ({e.kind}): {e.message}")
            return ERROR_MARKER
        return self.authorization.decrypt_for_display(self.signer, owner, handle, token)

    # =========================================================================
    # ACTIONS
    # =========================================================================

    def _failure(self, error: DistributorError, tx_hash: str = "") -> ActionStatus:
        message = f"Error: {error.message}"
        if isinstance(error, NetworkFailure) and error.ambiguous:
            message += " (transaction may still confirm, re-query balances before retrying)"
        log.warning(f"{error.kind}: {error.message}")
        return ActionStatus(status=error.kind, tx_hash=tx_hash, message=message)

    def _submit(self, submit: Callable, success_message: str,
                on_status: Optional[StatusCallback] = None) -> ActionStatus:
        try:
            tx = submit()
        except DistributorError as e:
            return self._failure(e)

        pending = ActionStatus(status=TxStatus.PENDING.value, tx_hash=tx.tx_hash,
                               message=f"Waiting for confirmation: {tx.tx_hash}")
        log.info(pending.message)
        if on_status is not None:
            on_status(pending)

        try:
            tx.wait(self.receipt_timeout)
        except DistributorError as e:
            return self._failure(e, tx.tx_hash)

        log.info(f"{success_message} ({mask_secret(tx.tx_hash, 10, 6)})")
        return ActionStatus(status=TxStatus.CONFIRMED.value, tx_hash=tx.tx_hash,
                            message=success_message)

    def request_faucet(self, amount_text: str,
                       on_status: Optional[StatusCallback] = None) -> ActionStatus:
        """Mint `amount_text` cETH to the connected account."""
        try:
            amount = parse_positive_amount(amount_text, self.decimals)
        except AmountParseError as e:
            return ActionStatus(
                status=e.kind,
                message=f"Error: amount must be greater than 0 and at most {MAX_DISPLAY_AMOUNT}",
            )
        return self._submit(
            lambda: self.settlement.mint(self.address, amount),
            f"Faucet mint confirmed: {format_amount(amount, self.decimals)} cETH",
            on_status,
        )

    def distribute(self, rows: Iterable[Row],
                   on_status: Optional[StatusCallback] = None) -> ActionStatus:
        """
        Encrypt the row amounts and submit one batch distribution.

        Args:
            rows: (address, amount_text) tuples or {"address", "amount"} dicts
        """
        rows = [_row_fields(r) for r in rows]
        if not rows:
            return self._failure(LengthMismatch("no recipients"))

        recipients: List[str] = []
        for index, (address, _) in enumerate(rows, start=1):
            try:
                recipients.append(normalize_address(address, allow_zero=False))
            except InvalidAddress as e:
                return ActionStatus(status=e.kind,
                                    message=f"Error: invalid address in row {index}")
        try:
            amounts = parse_amount_rows([amount for _, amount in rows], self.decimals)
        except AmountParseError as e:
            return ActionStatus(status=e.kind, message=e.message)

        try:
            bundle = self.encryption.encrypt_batch(
                self.distributor_address, self.address, amounts
            )
        except DistributorError as e:
            return self._failure(e)

        return self._submit(
            lambda: self.settlement.batch_distribute_encrypted(recipients, bundle),
            "Distribution confirmed",
            on_status,
        )

    def status(self) -> dict:
        """Addresses and network, for status endpoints."""
        return {
            "network": self.network,
            "account": self.address,
            "token_address": self.token_address,
            "distributor_address": self.distributor_address,
            "decimals": self.decimals,
        }
