import base58
from typing import Any

from solders.pubkey import Pubkey

from .exceptions import (
    InvalidAddressError,
    InvalidAmountError,
    InvalidSlippageError,
)

SOLANA_ADDRESS_LENGTH = 32
MAX_U64 = 2**64 - 1

MIN_SLIPPAGE_BPS = 0
MAX_SLIPPAGE_BPS = 10000


def validate_solana_address(address: Any, field_name: str = "address") -> str:
    if not isinstance(address, str):
        raise InvalidAddressError(
            f"Address must be a string, got {type(address).__name__}",
            address=str(address)[:50],
            field_name=field_name
        )

    address = address.strip()

    if not address:
        raise InvalidAddressError("Address cannot be empty", address="", field_name=field_name)

    if len(address) < 32 or len(address) > 44:
        raise InvalidAddressError(
            f"Invalid address length: {len(address)} characters",
            address=address, field_name=field_name
        )

    try:
        decoded = base58.b58decode(address)
    except ValueError as e:
        raise InvalidAddressError(
            f"Invalid base58 encoding: {str(e)}",
            address=address, field_name=field_name
        )

    if len(decoded) != SOLANA_ADDRESS_LENGTH:
        raise InvalidAddressError(
            f"Decoded address has wrong length: {len(decoded)} bytes (expected {SOLANA_ADDRESS_LENGTH})",
            address=address, field_name=field_name
        )

    return address


def to_pubkey(address: Any, field_name: str = "address") -> Pubkey:
    return Pubkey.from_string(validate_solana_address(address, field_name))


def validate_u64_amount(amount: Any, field_name: str = "amount") -> int:
    """Amounts are whole smallest-unit integers: 0 < amount <= 2**64 - 1."""
    # bool is an int subclass
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidAmountError(
            f"Amount must be an integer, got {type(amount).__name__}",
            field_name=field_name
        )

    if amount <= 0:
        raise InvalidAmountError(
            f"Amount must be positive, got {amount}",
            field_name=field_name, context={"amount": amount}
        )

    if amount > MAX_U64:
        raise InvalidAmountError(
            f"Amount {amount} exceeds u64 maximum",
            field_name=field_name, context={"amount": amount}
        )

    return amount


def validate_slippage_bps(slippage_bps: Any, field_name: str = "slippage_bps") -> int:
    if isinstance(slippage_bps, bool) or not isinstance(slippage_bps, int):
        raise InvalidSlippageError(
            f"Slippage must be an integer number of basis points, got {type(slippage_bps).__name__}",
            field_name=field_name
        )

    if not MIN_SLIPPAGE_BPS <= slippage_bps <= MAX_SLIPPAGE_BPS:
        raise InvalidSlippageError(
            f"Slippage {slippage_bps} bps outside [{MIN_SLIPPAGE_BPS}, {MAX_SLIPPAGE_BPS}]",
            field_name=field_name
        )

    return slippage_bps


__all__ = [
    "validate_solana_address",
    "to_pubkey",
    "validate_u64_amount",
    "validate_slippage_bps",
    "MAX_U64",
    "SOLANA_ADDRESS_LENGTH",
]
