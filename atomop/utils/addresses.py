"""Address helpers shared by every trust check."""

from __future__ import annotations

from web3 import Web3

from atomop.errors import InvalidParameters

NATIVE_CURRENCY = "0x0000000000000000000000000000000000000000"


def normalize_address(value: str, name: str = "address") -> str:
    """Return the checksum form of ``value`` or raise ``InvalidParameters``."""
    if not isinstance(value, str) or not Web3.is_address(value):
        raise InvalidParameters(f"{name} is not a valid address: {value!r}")
    return Web3.to_checksum_address(value)


def same_address(a: str | None, b: str | None) -> bool:
    """Case-insensitive address equality. ``None`` never matches."""
    if not a or not b:
        return False
    return a.lower() == b.lower()


def is_native(currency: str) -> bool:
    return same_address(currency, NATIVE_CURRENCY)
