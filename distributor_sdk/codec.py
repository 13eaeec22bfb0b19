# Copyright (c) 2025 The Confidential Distributor developers
# Distributed under the MIT software license

"""
Confidential Distributor SDK - Ciphertext Codec

Wire encoding for the opaque values exchanged with the coprocessor and the
settlement layer:

  - handle: 32-byte ciphertext identifier, canonical form "0x" + 64 lowercase hex
  - proof:  variable-length input proof, canonical form "0x" + hex
  - address: EIP-55 checksummed account address

No business logic lives here.
"""

from typing import Union

from web3 import Web3

from .errors import InvalidAddress

HANDLE_SIZE = 32
ZERO_HANDLE = "0x" + "00" * HANDLE_SIZE
ZERO_ADDRESS = "0x" + "00" * 20

HandleLike = Union[str, bytes, bytearray, int]


def _strip_0x(value: str) -> str:
    return value[2:] if value[:2] in ("0x", "0X") else value


# ═══════════════════════════════════════════════════════════════════════════════
# HANDLES
# ═══════════════════════════════════════════════════════════════════════════════

def encode_handle(value: HandleLike) -> str:
    """
    Normalize a ciphertext handle to its canonical hex form.

    Args:
        value: 32 raw bytes, an integer below 2**256, or a hex string
               (with or without 0x prefix)

    Returns:
        "0x" + 64 lowercase hex characters

    Raises:
        ValueError: if the value is not a 32-byte handle
    """
    if isinstance(value, (bytes, bytearray)):
        raw = bytes(value)
    elif isinstance(value, bool):
        raise ValueError("Handle cannot be a boolean")
    elif isinstance(value, int):
        if value < 0 or value >= 1 << (8 * HANDLE_SIZE):
            raise ValueError(f"Handle integer out of range: {value}")
        raw = value.to_bytes(HANDLE_SIZE, "big")
    elif isinstance(value, str):
        try:
            raw = bytes.fromhex(_strip_0x(value.strip()))
        except ValueError:
            raise ValueError(f"Handle is not valid hex: {value!r}")
    else:
        raise ValueError(f"Unsupported handle type: {type(value).__name__}")

    if len(raw) != HANDLE_SIZE:
        raise ValueError(f"Handle must be {HANDLE_SIZE} bytes, got {len(raw)}")
    return "0x" + raw.hex()


def decode_handle(handle: HandleLike) -> bytes:
    """Return the 32 raw bytes of a handle (bytes32 contract argument)."""
    return bytes.fromhex(encode_handle(handle)[2:])


def is_zero_handle(handle: HandleLike) -> bool:
    """Zero handle = uninitialized balance (unknown account)."""
    return encode_handle(handle) == ZERO_HANDLE


# ═══════════════════════════════════════════════════════════════════════════════
# PROOFS
# ═══════════════════════════════════════════════════════════════════════════════

def encode_proof(value: Union[str, bytes, bytearray]) -> str:
    """Normalize an input proof to "0x" + lowercase hex."""
    if isinstance(value, (bytes, bytearray)):
        raw = bytes(value)
    elif isinstance(value, str):
        try:
            raw = bytes.fromhex(_strip_0x(value.strip()))
        except ValueError:
            raise ValueError(f"Proof is not valid hex: {value[:18]!r}...")
    else:
        raise ValueError(f"Unsupported proof type: {type(value).__name__}")
    if not raw:
        raise ValueError("Proof is empty")
    return "0x" + raw.hex()


def decode_proof(proof: Union[str, bytes, bytearray]) -> bytes:
    """Return the raw bytes of a proof (bytes contract argument)."""
    return bytes.fromhex(encode_proof(proof)[2:])


# ═══════════════════════════════════════════════════════════════════════════════
# ADDRESSES
# ═══════════════════════════════════════════════════════════════════════════════

def normalize_address(value: str, allow_zero: bool = True) -> str:
    """
    Validate and checksum an account address.

    Raises:
        InvalidAddress: if the value is not an address, or is the zero
                        address and allow_zero is False
    """
    if not isinstance(value, str) or not Web3.is_address(value.strip()):
        raise InvalidAddress(f"Invalid address: {value!r}")
    address = Web3.to_checksum_address(value.strip())
    if not allow_zero and address == ZERO_ADDRESS:
        raise InvalidAddress("Zero address is not a valid account")
    return address


def same_address(a: str, b: str) -> bool:
    """Case-insensitive address comparison."""
    return bool(a) and bool(b) and a.lower() == b.lower()
