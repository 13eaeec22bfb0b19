# Copyright (c) 2025 The Confidential Distributor developers
# Distributed under the MIT software license

"""
Confidential Distributor SDK - Error Taxonomy

Every failure the SDK reports derives from DistributorError and carries a
`kind` string. The display surface (service, HTTP API, CLI) uses `kind`
verbatim as the status string returned to callers.

Validation errors (recoverable = True) are raised before any mutating call
is issued. Execution errors (InsufficientBalance, Overflow) revert the whole
unit of work. NetworkFailure may be ambiguous: when `ambiguous` is set the
transaction may already have been broadcast, so callers must re-query state
before retrying.
"""

from typing import Dict, Type


ERROR_MARKER = "Error"


class DistributorError(Exception):
    """Base class for all SDK errors."""
    kind = "Error"
    recoverable = False

    def __init__(self, message: str = ""):
        self.message = message or self.kind
        super().__init__(self.message)


# ═══════════════════════════════════════════════════════════════════════════════
# VALIDATION ERRORS (no state change, locally recoverable)
# ═══════════════════════════════════════════════════════════════════════════════

class LengthMismatch(DistributorError):
    """Recipient list and ciphertext list differ in length."""
    kind = "LengthMismatch"
    recoverable = True


class InvalidProof(DistributorError):
    """Input proof does not cover the handles for this contract/submitter."""
    kind = "InvalidProof"
    recoverable = True


class InvalidAddress(DistributorError):
    """Malformed or zero account address."""
    kind = "InvalidAddress"
    recoverable = True


class AmountParseError(DistributorError):
    """Amount text is empty or not a decimal number."""
    kind = "ParseError"
    recoverable = True


class OutOfRange(AmountParseError):
    """Amount is negative or does not fit in an unsigned 64-bit integer."""
    kind = "OutOfRange"


class OwnerMismatch(DistributorError):
    """Signing account is not the owner of the balance being decrypted."""
    kind = "OwnerMismatch"
    recoverable = True


# ═══════════════════════════════════════════════════════════════════════════════
# EXECUTION ERRORS (whole unit of work reverts)
# ═══════════════════════════════════════════════════════════════════════════════

class InsufficientBalance(DistributorError):
    kind = "InsufficientBalance"


class Overflow(DistributorError):
    kind = "Overflow"


class Unauthorized(DistributorError):
    """Caller lacks the required role or handle permission."""
    kind = "Unauthorized"


class TransactionReverted(DistributorError):
    """Definite on-chain rejection without a decodable reason."""
    kind = "TransactionReverted"

    def __init__(self, message: str = "", tx_hash: str = ""):
        self.tx_hash = tx_hash
        super().__init__(message)


# ═══════════════════════════════════════════════════════════════════════════════
# AUTHORIZATION / TRANSPORT ERRORS
# ═══════════════════════════════════════════════════════════════════════════════

class AuthorizationFailed(DistributorError):
    """Oracle rejected the signature or ownership of a decryption grant."""
    kind = "AuthorizationFailed"


class GrantExpired(DistributorError):
    """Decryption grant window elapsed before plaintext was received."""
    kind = "GrantExpired"


class NetworkFailure(DistributorError):
    """Settlement layer or coprocessor unreachable or timed out."""
    kind = "NetworkFailure"

    def __init__(self, message: str = "", ambiguous: bool = False):
        self.ambiguous = ambiguous
        super().__init__(message)


class ProtocolStateError(DistributorError):
    """Decryption session used out of order or after a terminal state."""
    kind = "ProtocolStateError"


ERRORS_BY_KIND: Dict[str, Type[DistributorError]] = {
    cls.kind: cls for cls in (
        LengthMismatch, InvalidProof, InvalidAddress, AmountParseError,
        OutOfRange, OwnerMismatch, InsufficientBalance, Overflow,
        Unauthorized, TransactionReverted, AuthorizationFailed,
        GrantExpired, NetworkFailure, ProtocolStateError,
    )
}


def error_from_kind(kind: str, message: str = "") -> DistributorError:
    """Build an error instance from its kind string (unknown kinds revert)."""
    cls = ERRORS_BY_KIND.get(kind, TransactionReverted)
    return cls(message or kind)
