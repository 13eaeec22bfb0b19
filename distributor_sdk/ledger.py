# Copyright (c) 2025 The Confidential Distributor developers
# Distributed under the MIT software license

"""
Confidential Distributor SDK - Confidential Ledger

One encrypted balance per account, updated only through homomorphic
operations of the injected CoprocessorBackend.

Balance check (transfer):
    ok       = ge(balance, amount)          encrypted boolean
    moved    = select(ok, amount, 0)        constant structure
    balance' = balance - moved
    to'      = to + moved

Under ArithmeticPolicy.REVERT the ledger additionally reveals `ok` and rolls
the unit of work back when it is false. Under CLAMP nothing is revealed and a
failing transfer moves zero. Under WRAP no check is made at all.

Every successful mutation gives the touched accounts new handles. Old handles
stay valid in the backend, so grants issued against them keep working.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Dict, List

from .amounts import TOKEN_DECIMALS, check_uint64_values
from .codec import ZERO_ADDRESS, ZERO_HANDLE, normalize_address, same_address, encode_handle
from .config import mask_secret
from .dist_types import TransferRecord
from .encryption import ArithmeticPolicy, CoprocessorBackend
from .errors import InsufficientBalance, InvalidProof, Overflow, Unauthorized

log = logging.getLogger(__name__)


class ConfidentialLedger:
    """
    Confidential token ledger (cETH).

    Usage:
        ledger = ConfidentialLedger(fhe, token_address, owner=deployer)
        ledger.mint(deployer, distributor, 1_000_000)
        handle = ledger.confidential_balance_of(distributor)
    """

    name = "Confidential ETH"
    symbol = "cETH"
    decimals = TOKEN_DECIMALS

    def __init__(self, backend: CoprocessorBackend, address: str, owner: str,
                 open_mint: bool = False):
        """
        Args:
            backend: Coprocessor performing the encrypted arithmetic
            address: Ledger (token contract) address
            owner: Initial minter
            open_mint: Let any account mint (test-network faucet)
        """
        self.backend = backend
        self.address = normalize_address(address, allow_zero=False)
        self.owner = normalize_address(owner, allow_zero=False)
        self.open_mint = open_mint

        self._balances: Dict[str, str] = {}
        self._supply = ZERO_HANDLE
        self._minters = {self.owner.lower()}
        self.events: List[TransferRecord] = []
        self._lock = threading.RLock()

    # ═══════════════════════════════════════════════════════════════════════
    # UNIT OF WORK
    # ═══════════════════════════════════════════════════════════════════════

    @contextmanager
    def atomic(self):
        """
        Serialize mutations and roll back balances, supply and events if the
        block raises.
        """
        with self._lock:
            balances = dict(self._balances)
            supply = self._supply
            event_count = len(self.events)
            try:
                yield self
            except Exception:
                self._balances = balances
                self._supply = supply
                del self.events[event_count:]
                raise

    def _conditional(self, ok: str, amount: str, error_cls, message: str) -> str:
        """Apply the arithmetic policy to a checked amount."""
        if self.backend.policy == ArithmeticPolicy.WRAP:
            return amount
        effective = self.backend.select(ok, amount, self.backend.trivial_encrypt(0))
        if self.backend.policy == ArithmeticPolicy.REVERT and not self.backend.reveal(ok):
            raise error_cls(message)
        return effective

    def _set_balance(self, account: str, handle: str):
        self._balances[account.lower()] = handle
        self.backend.allow_many(handle, [self.address, account])

    # ═══════════════════════════════════════════════════════════════════════
    # ROLES
    # ═══════════════════════════════════════════════════════════════════════

    def is_minter(self, account: str) -> bool:
        return self.open_mint or account.lower() in self._minters

    def grant_minter(self, caller: str, account: str):
        if caller.lower() not in self._minters:
            raise Unauthorized(f"{caller} is not a minter")
        self._minters.add(normalize_address(account, allow_zero=False).lower())

    def revoke_minter(self, caller: str, account: str):
        if caller.lower() not in self._minters:
            raise Unauthorized(f"{caller} is not a minter")
        self._minters.discard(account.lower())

    # ═══════════════════════════════════════════════════════════════════════
    # QUERIES
    # ═══════════════════════════════════════════════════════════════════════

    def confidential_balance_of(self, account: str) -> str:
        """Current balance handle; zero handle for unknown accounts. Never fails."""
        if not isinstance(account, str):
            return ZERO_HANDLE
        return self._balances.get(account.lower(), ZERO_HANDLE)

    def confidential_total_supply(self) -> str:
        return self._supply

    def accounts(self) -> List[str]:
        return list(self._balances)

    # ═══════════════════════════════════════════════════════════════════════
    # MUTATIONS
    # ═══════════════════════════════════════════════════════════════════════

    def mint(self, caller: str, account: str, amount: int) -> str:
        """
        Credit a plaintext amount to an account.

        Args:
            caller: Account issuing the mint (must be a minter)
            account: Recipient
            amount: Raw uint64 amount

        Returns:
            New balance handle of `account`

        Raises:
            Unauthorized: caller is not a minter
            InvalidAddress: malformed or zero recipient
            OutOfRange: amount outside uint64
            Overflow: total supply would exceed 2^64 - 1 (REVERT policy)
        """
        if not self.is_minter(caller):
            raise Unauthorized(f"{caller} is not allowed to mint")
        account = normalize_address(account, allow_zero=False)
        check_uint64_values([amount])

        fhe = self.backend
        with self.atomic():
            encrypted = fhe.trivial_encrypt(amount)
            candidate = fhe.add(self._supply, encrypted)
            ok = fhe.ge(candidate, self._supply)
            effective = self._conditional(ok, encrypted, Overflow,
                                          "Mint would overflow total supply")

            self._supply = fhe.add(self._supply, effective)
            fhe.allow(self._supply, self.address)

            new_balance = fhe.add(self.confidential_balance_of(account), effective)
            self._set_balance(account, new_balance)
            self.events.append(TransferRecord(
                kind="mint", sender=ZERO_ADDRESS, recipient=account,
                amount_handle=effective, sender_balance="",
                recipient_balance=new_balance,
            ))

        log.info(f"Mint to {account}: balance {mask_secret(new_balance)}")
        return new_balance

    def transfer_encrypted(self, sender: str, recipient: str, amount_handle) -> str:
        """
        Move an encrypted amount between accounts.

        The amount handle must be usable by the sender (ACL). The underflow
        check is a single encrypted comparison followed by a select.

        Returns:
            New balance handle of `recipient`

        Raises:
            InvalidAddress: malformed or zero sender/recipient
            InvalidProof: malformed amount handle
            Unauthorized: sender may not use amount_handle
            InsufficientBalance: balance < amount (REVERT policy)
        """
        sender = normalize_address(sender, allow_zero=False)
        recipient = normalize_address(recipient, allow_zero=False)
        try:
            amount_handle = encode_handle(amount_handle)
        except ValueError as e:
            raise InvalidProof(str(e))

        fhe = self.backend
        if not fhe.is_allowed(amount_handle, sender):
            raise Unauthorized(f"{sender} may not use amount handle "
                               f"{mask_secret(amount_handle)}")

        with self.atomic():
            sender_balance = self.confidential_balance_of(sender)
            ok = fhe.ge(sender_balance, amount_handle)
            moved = self._conditional(ok, amount_handle, InsufficientBalance,
                                      f"Insufficient balance for {sender}")

            new_sender = fhe.sub(sender_balance, moved)
            self._set_balance(sender, new_sender)
            # read after the debit so self-transfers net to zero
            new_recipient = fhe.add(self.confidential_balance_of(recipient), moved)
            self._set_balance(recipient, new_recipient)

            self.events.append(TransferRecord(
                kind="transfer", sender=sender, recipient=recipient,
                amount_handle=amount_handle, sender_balance=new_sender,
                recipient_balance=new_recipient,
            ))

        log.debug(f"Transfer {sender} -> {recipient}: {mask_secret(amount_handle)}")
        return new_recipient

    def events_for(self, account: str) -> List[TransferRecord]:
        return [e for e in self.events
                if same_address(e.sender, account) or same_address(e.recipient, account)]
