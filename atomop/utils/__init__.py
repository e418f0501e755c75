"""Utilities - logging setup and address helpers."""

from atomop.utils.addresses import NATIVE_CURRENCY, is_native, normalize_address, same_address
from atomop.utils.logging import SECURITY_SIGNAL, setup_logging

__all__ = [
    "setup_logging",
    "SECURITY_SIGNAL",
    "NATIVE_CURRENCY",
    "is_native",
    "normalize_address",
    "same_address",
]
