"""Annotated field types shared by pydantic models."""

from __future__ import annotations

from typing import Annotated, Any

from pydantic import BeforeValidator, Field, PlainSerializer
from web3 import Web3

UINT128_MAX = 2**128 - 1
UINT256_MAX = 2**256 - 1


def _checksum(v: Any) -> str:
    if not isinstance(v, str) or not Web3.is_address(v):
        raise ValueError(f"not a valid address: {v!r}")
    return Web3.to_checksum_address(v)


def _hex_bytes(v: Any) -> bytes:
    if isinstance(v, (bytes, bytearray)):
        return bytes(v)
    if isinstance(v, str):
        body = v[2:] if v.startswith("0x") else v
        try:
            return bytes.fromhex(body)
        except ValueError as exc:
            raise ValueError(f"not a hex string: {v!r}") from exc
    raise ValueError(f"expected bytes or hex string, got {type(v).__name__}")


Address = Annotated[str, BeforeValidator(_checksum)]
HexData = Annotated[
    bytes,
    BeforeValidator(_hex_bytes),
    PlainSerializer(lambda v: "0x" + v.hex(), return_type=str, when_used="json"),
]
Uint128 = Annotated[int, Field(ge=0, le=UINT128_MAX, strict=True)]
Uint256 = Annotated[int, Field(ge=0, le=UINT256_MAX, strict=True)]
