# Copyright (c) 2025 The Confidential Distributor developers
# Distributed under the MIT software license

"""
Confidential Distributor SDK

Encrypted balances and atomic batch distribution on an FHE coprocessor.

Architecture:
  - Balances are ciphertext handles; arithmetic runs on the coprocessor
  - The distributor debits its own balance and credits N recipients atomically
  - Plaintext only comes back through a signed, time-boxed decryption grant

Amounts:
  - Protocol: raw uint64
  - SDK (display): 6 fractional digits, truncated on parse

Usage:
    from distributor_sdk import DistributorService, parse_amount

    service = DistributorService.local(Account.from_key(key))
    service.distribute([(alice, "0.0001"), (bob, "0.0002")])
    print(service.decrypt_balance())
"""

from .amounts import (
    MAX_DISPLAY_AMOUNT,
    MAX_UINT64,
    TOKEN_DECIMALS,
    format_amount,
    parse_amount,
    parse_positive_amount,
    sanitize_amount_input,
    validate_amount,
)
from .authorization import AuthorizationProtocol, DecryptionSession
from .codec import ZERO_HANDLE, decode_handle, encode_handle
from .config import Config, NETWORKS
from .dist_types import (
    ActionStatus, BatchReceipt, CiphertextBundle, DecryptionGrant, DecryptionState,
)
from .distributor import BatchDistributor
from .encryption import ArithmeticPolicy, CoprocessorBackend, EncryptionService
from .errors import ERROR_MARKER, DistributorError
from .ledger import ConfidentialLedger
from .local import LocalSettlement, bootstrap_local
from .mock_coprocessor import MockCoprocessor
from .relayer import RelayerEncryptionService
from .service import DistributorService
from .settlement import PendingTransaction, SettlementClient

__version__ = "0.1.0"
__all__ = [
    # Types
    "ActionStatus", "BatchReceipt", "CiphertextBundle", "DecryptionGrant",
    "DecryptionState", "ArithmeticPolicy",
    # Core
    "ConfidentialLedger", "BatchDistributor", "AuthorizationProtocol",
    "DecryptionSession", "EncryptionService", "CoprocessorBackend",
    "MockCoprocessor", "RelayerEncryptionService",
    # Settlement / surface
    "SettlementClient", "PendingTransaction", "LocalSettlement",
    "bootstrap_local", "DistributorService", "Config", "NETWORKS",
    # Codec / amounts
    "ZERO_HANDLE", "encode_handle", "decode_handle",
    "MAX_UINT64", "MAX_DISPLAY_AMOUNT", "TOKEN_DECIMALS", "parse_amount",
    "format_amount", "parse_positive_amount", "sanitize_amount_input",
    "validate_amount",
    # Errors
    "DistributorError", "ERROR_MARKER",
]
