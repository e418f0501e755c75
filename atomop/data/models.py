"""Pydantic models for collaborator inputs and responses."""

from __future__ import annotations

from eth_abi import encode
from pydantic import BaseModel, ConfigDict, Field, model_validator
from web3 import Web3

from atomop.data.types import Address

POOL_KEY_ABI = "(address,address,uint24,int24,address)"

UINT24_MAX = 2**24 - 1
INT24_MIN = -(2**23)
INT24_MAX = 2**23 - 1


def _int24(raw: int) -> int:
    raw &= 0xFFFFFF
    return raw - (1 << 24) if raw & 0x800000 else raw


class PoolKey(BaseModel):
    """Identifies a concentrated-liquidity pool."""

    model_config = ConfigDict(frozen=True)

    currency0: Address
    currency1: Address
    fee: int = Field(ge=0, le=UINT24_MAX)
    tick_spacing: int = Field(ge=1, le=INT24_MAX)
    hooks: Address = "0x0000000000000000000000000000000000000000"

    @model_validator(mode="after")
    def validate_order(self) -> "PoolKey":
        """Currencies are sorted by numeric address value."""
        if int(self.currency0, 16) >= int(self.currency1, 16):
            raise ValueError("currency0 must sort strictly below currency1")
        return self

    def as_abi_tuple(self) -> tuple[str, str, int, int, str]:
        return (self.currency0, self.currency1, self.fee, self.tick_spacing, self.hooks)

    @property
    def currencies(self) -> tuple[str, str]:
        return (self.currency0, self.currency1)

    @property
    def pool_id(self) -> str:
        """keccak256 of the ABI-encoded key, as a 0x-prefixed hex string."""
        return Web3.to_hex(Web3.keccak(encode([POOL_KEY_ABI], [self.as_abi_tuple()])))


class PositionInfo(BaseModel):
    """Unpacked position info word.

    Layout (low to high bits): 8 bits has-subscriber flag, 24 bits tickLower,
    24 bits tickUpper, 200 bits truncated pool id.
    """

    model_config = ConfigDict(frozen=True)

    tick_lower: int
    tick_upper: int
    has_subscriber: bool
    pool_id_prefix: str

    @classmethod
    def from_packed(cls, packed: int) -> "PositionInfo":
        return cls(
            has_subscriber=(packed & 0xFF) != 0,
            tick_lower=_int24(packed >> 8),
            tick_upper=_int24(packed >> 32),
            pool_id_prefix="0x" + format(packed >> 56, "050x"),
        )


class OperationResult(BaseModel):
    """Outcome of one submitted batch.

    ``reported_deltas`` is filled by processors that can observe the
    initiator's actual currency movement; ``predicted_deltas`` and
    ``discrepancies`` are attached by the executor.
    """

    success: bool = True
    operation_id: int | None = None
    tx_hash: str | None = None
    block_number: int | None = None
    gas_used: int | None = None
    fingerprint: str | None = None
    reported_deltas: dict[str, int] = Field(default_factory=dict)
    predicted_deltas: dict[str, int] = Field(default_factory=dict)
    discrepancies: list[str] = Field(default_factory=list)
