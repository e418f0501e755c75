"""Versioned context payload carried through the lending pool.

The pool echoes the context back verbatim but does not preserve who asked
for the borrow, so the payload records the original caller.
"""

from __future__ import annotations

from dataclasses import dataclass

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError
from web3 import Web3

from atomop.errors import InvalidParameters
from atomop.utils.addresses import normalize_address

CONTEXT_VERSION = 1
CONTEXT_ABI = ["uint8", "address", "bytes"]


@dataclass(frozen=True)
class FlashContext:
    caller: str
    user_data: bytes = b""
    version: int = CONTEXT_VERSION

    def encode(self) -> bytes:
        return encode(CONTEXT_ABI, [self.version, self.caller, self.user_data])

    @classmethod
    def create(cls, caller: str, user_data: bytes = b"") -> "FlashContext":
        if not isinstance(user_data, (bytes, bytearray)):
            raise InvalidParameters("user_data must be bytes")
        return cls(caller=normalize_address(caller, "caller"), user_data=bytes(user_data))

    @classmethod
    def decode(cls, payload: bytes) -> "FlashContext":
        """Strictly decode a context payload.

        Raises:
            InvalidParameters: Malformed, non-canonical, or unknown-version payload.
        """
        if not isinstance(payload, (bytes, bytearray)):
            raise InvalidParameters("context payload must be bytes")
        payload = bytes(payload)
        try:
            version, caller, user_data = decode(CONTEXT_ABI, payload)
        except (DecodingError, ValueError, OverflowError) as exc:
            raise InvalidParameters(f"malformed flash context: {exc}") from exc

        if version != CONTEXT_VERSION:
            raise InvalidParameters(f"unsupported flash context version {version}")

        context = cls(caller=Web3.to_checksum_address(caller), user_data=user_data, version=version)
        # Trailing or padded bytes would let two payloads decode to one context.
        if context.encode() != payload:
            raise InvalidParameters("flash context is not canonically encoded")
        return context
