"""
Account and amount normalisation.

Accounts are 20-byte hex addresses in EIP-55 checksum form.
Amounts are unsigned 256-bit integers.
"""

from typing import Any

from eth_utils import is_address, to_checksum_address

from .errors import InvalidAmount, ValidationError

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

MAX_UINT256 = 2**256 - 1


def normalize_address(value: Any) -> str:
    """Return the checksum form of an address, or raise ValidationError."""
    if not isinstance(value, str) or not is_address(value):
        raise ValidationError(f"Not a valid account address: {value!r}")
    return to_checksum_address(value)


def check_amount(value: Any) -> int:
    """Validate a uint256 amount. Booleans are not amounts."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidAmount(f"Amount must be an integer, got {type(value).__name__}")
    if value < 0 or value > MAX_UINT256:
        raise InvalidAmount(f"Amount {value} is outside the uint256 range")
    return value
