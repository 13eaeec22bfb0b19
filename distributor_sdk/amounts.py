# Copyright (c) 2025 The Confidential Distributor developers
# Distributed under the MIT software license

"""
Confidential Distributor SDK - Amount Serializer

Converts between human decimal strings ("0.1") and the raw fixed-point
uint64 domain used by the token (100000 with 6 decimals).

Architecture:
    - Token (protocol): stores euint64, i.e. raw integers in [0, 2^64 - 1]
    - SDK (display): 6 fractional digits, truncated (never rounded)

Rules:
    - parse() accepts digits and at most one decimal point
    - extra fractional digits are truncated, not rounded
    - negative values and values above 2^64 - 1 raise OutOfRange
    - empty or non-numeric text raises AmountParseError
    - format() is the exact inverse: parse(format(a)) == a

Interactive input:
    sanitize_amount_input() cleans a value while it is being typed. It may
    return a partial string such as "12." that parse() would still accept
    only at submission time.
"""

import re
from typing import List, Sequence, Tuple

from .errors import AmountParseError, OutOfRange

# ═══════════════════════════════════════════════════════════════════════════════
# DOMAIN
# ═══════════════════════════════════════════════════════════════════════════════

TOKEN_DECIMALS = 6
MAX_UINT64 = (1 << 64) - 1

_NUMBER = re.compile(r"^([0-9]*)(?:\.([0-9]*))?$")


# ═══════════════════════════════════════════════════════════════════════════════
# PARSE / FORMAT
# ═══════════════════════════════════════════════════════════════════════════════

def parse_amount(text, max_fractional_digits: int = TOKEN_DECIMALS) -> int:
    """
    Parse a decimal display string into a raw uint64 amount.

    Args:
        text: Decimal string, e.g. "12.5"
        max_fractional_digits: Token precision (default 6)

    Returns:
        Raw integer amount (text * 10^max_fractional_digits, truncated)

    Raises:
        AmountParseError: empty or malformed text
        OutOfRange: negative, or scaled value above 2^64 - 1

    Examples:
        >>> parse_amount("0.1")
        100000

        >>> parse_amount("0.1000005")
        100000

        >>> parse_amount("1.")
        1000000
    """
    if text is None:
        raise AmountParseError("Amount is empty")
    value = str(text).strip()
    if not value:
        raise AmountParseError("Amount is empty")

    negative = value.startswith("-")
    body = value[1:] if negative else value

    match = _NUMBER.match(body)
    if not match or not (match.group(1) or match.group(2)):
        raise AmountParseError(f"Not a decimal amount: {value!r}")
    if negative:
        raise OutOfRange(f"Amount must not be negative: {value!r}")

    whole = match.group(1) or "0"
    fraction = (match.group(2) or "")[:max_fractional_digits]
    fraction = fraction.ljust(max_fractional_digits, "0")

    scaled = int(whole) * 10 ** max_fractional_digits + int(fraction or "0")
    if scaled > MAX_UINT64:
        raise OutOfRange(f"Amount exceeds uint64 range: {value!r}")
    return scaled


def format_amount(value, decimals: int = TOKEN_DECIMALS, fixed: bool = False) -> str:
    """
    Format a raw uint64 amount as a decimal display string.

    Args:
        value: Raw amount (int, or decimal string as returned by the oracle)
        decimals: Token precision (default 6)
        fixed: Keep all fractional digits instead of trimming zeros

    Examples:
        >>> format_amount(1000000)
        "1"

        >>> format_amount(100000)
        "0.1"

        >>> format_amount(100000, fixed=True)
        "0.100000"
    """
    if isinstance(value, bool):
        raise AmountParseError("Amount cannot be a boolean")
    if isinstance(value, str):
        try:
            value = int(value.strip())
        except ValueError:
            raise AmountParseError(f"Not a raw amount: {value!r}")
    if value < 0 or value > MAX_UINT64:
        raise OutOfRange(f"Raw amount outside uint64 range: {value}")

    whole, fraction = divmod(value, 10 ** decimals)
    if decimals == 0:
        return str(whole)

    fraction_str = str(fraction).rjust(decimals, "0")
    if not fixed:
        fraction_str = fraction_str.rstrip("0")
    return f"{whole}.{fraction_str}" if fraction_str else str(whole)


MAX_DISPLAY_AMOUNT = format_amount(MAX_UINT64)


def parse_positive_amount(text, max_fractional_digits: int = TOKEN_DECIMALS) -> int:
    """Parse an amount that must be strictly greater than zero."""
    amount = parse_amount(text, max_fractional_digits)
    if amount == 0:
        raise OutOfRange(
            f"Amount must be greater than 0 and at most {MAX_DISPLAY_AMOUNT}"
        )
    return amount


def check_uint64_values(values: Sequence[int]) -> List[int]:
    """
    Validate raw amounts before they reach encryption.

    Raises:
        OutOfRange: any value is not an integer in [0, 2^64 - 1]
    """
    checked = []
    for index, value in enumerate(values):
        if isinstance(value, bool) or not isinstance(value, int):
            raise OutOfRange(f"Value {index} is not an integer: {value!r}")
        if value < 0 or value > MAX_UINT64:
            raise OutOfRange(f"Value {index} outside uint64 range: {value}")
        checked.append(value)
    return checked


def parse_amount_rows(texts: Sequence[str],
                      max_fractional_digits: int = TOKEN_DECIMALS) -> List[int]:
    """
    Parse one positive amount per distribution row.

    Raises:
        AmountParseError / OutOfRange: message names the 1-based row
    """
    amounts = []
    for row, text in enumerate(texts, start=1):
        try:
            amounts.append(parse_positive_amount(text, max_fractional_digits))
        except AmountParseError as e:
            raise type(e)(f"Error: invalid amount in row {row}")
    return amounts


# ═══════════════════════════════════════════════════════════════════════════════
# INTERACTIVE INPUT
# ═══════════════════════════════════════════════════════════════════════════════

def sanitize_amount_input(value: str, decimals: int = TOKEN_DECIMALS) -> str:
    """
    Clean a partially typed amount.

    Keeps digits and the first decimal point, truncates the fraction to
    `decimals` digits and keeps a trailing point so typing can continue.

    Examples:
        >>> sanitize_amount_input("1a2.3.4")
        "12.34"

        >>> sanitize_amount_input("5.")
        "5."

        >>> sanitize_amount_input(".1234567")
        "0.123456"
    """
    if not value:
        return ""

    cleaned = []
    dot_seen = False
    for char in value:
        if char.isdigit() and char.isascii():
            cleaned.append(char)
        elif char == "." and not dot_seen:
            dot_seen = True
            cleaned.append(".")
    cleaned = "".join(cleaned)

    if not cleaned:
        return ""
    if not dot_seen:
        return cleaned

    whole, fraction = cleaned.split(".", 1)
    fraction = fraction[:decimals]
    if value.endswith(".") and not fraction:
        return f"{whole or '0'}."
    return f"{whole or '0'}.{fraction}" if fraction else f"{whole or '0'}"


def validate_amount(text, max_fractional_digits: int = TOKEN_DECIMALS) -> Tuple[bool, str]:
    """
    Validate amount text for submission.

    Returns:
        (is_valid, message) tuple
    """
    try:
        amount = parse_positive_amount(text, max_fractional_digits)
    except AmountParseError as e:
        return False, e.message
    return True, f"OK: {format_amount(amount, max_fractional_digits)}"
