"""Typed actions for position-manager batches.

Each action kind has one parameter model. Models are frozen and validated at
construction; anything that does not match the kind's shape raises
``InvalidParameters`` before it can reach a batch.

On-chain codes and ABI layouts follow the position manager's action table.
Some parameter models carry the currencies of the position they touch even
where the on-chain payload does not (modify/burn reference a position by id);
those fields are used only for settlement accounting and are never encoded.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar, Mapping

from eth_abi import encode
from pydantic import BaseModel, ConfigDict, ValidationError, model_validator

from atomop.data.models import INT24_MAX, INT24_MIN, POOL_KEY_ABI, PoolKey
from atomop.data.types import Address, HexData, Uint128, Uint256
from atomop.errors import InvalidParameters


class ActionKind(str, Enum):
    """Action kinds understood by the position manager."""

    INCREASE_LIQUIDITY = "INCREASE_LIQUIDITY"
    DECREASE_LIQUIDITY = "DECREASE_LIQUIDITY"
    MINT_POSITION = "MINT_POSITION"
    BURN_POSITION = "BURN_POSITION"
    MINT_FROM_DELTAS = "MINT_FROM_DELTAS"
    SETTLE_PAIR = "SETTLE_PAIR"
    TAKE_PAIR = "TAKE_PAIR"
    CLOSE_CURRENCY = "CLOSE_CURRENCY"
    SWEEP = "SWEEP"


ACTION_CODES: dict[ActionKind, int] = {
    ActionKind.INCREASE_LIQUIDITY: 0x00,
    ActionKind.DECREASE_LIQUIDITY: 0x01,
    ActionKind.MINT_POSITION: 0x02,
    ActionKind.BURN_POSITION: 0x03,
    ActionKind.MINT_FROM_DELTAS: 0x05,
    ActionKind.SETTLE_PAIR: 0x0D,
    ActionKind.TAKE_PAIR: 0x11,
    ActionKind.CLOSE_CURRENCY: 0x12,
    ActionKind.SWEEP: 0x14,
}

SETTLEMENT_KINDS = frozenset(
    {
        ActionKind.SETTLE_PAIR,
        ActionKind.CLOSE_CURRENCY,
        ActionKind.TAKE_PAIR,
        ActionKind.SWEEP,
    }
)


class ActionParams(BaseModel):
    """Base class for per-kind parameter payloads."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    ABI: ClassVar[tuple[str, ...]] = ()

    def abi_values(self) -> list[Any]:
        raise NotImplementedError

    def currencies(self) -> tuple[str, ...]:
        raise NotImplementedError

    def encode(self) -> bytes:
        return encode(list(self.ABI), self.abi_values())


class _PositionCurrencies(ActionParams):
    """Mixin for actions that reference an existing position by id."""

    token_id: Uint256
    currency0: Address
    currency1: Address

    @model_validator(mode="after")
    def validate_pair(self) -> "_PositionCurrencies":
        if self.currency0 == self.currency1:
            raise ValueError("currency0 and currency1 must differ")
        return self

    def currencies(self) -> tuple[str, ...]:
        return (self.currency0, self.currency1)


class IncreaseLiquidityParams(_PositionCurrencies):
    ABI: ClassVar[tuple[str, ...]] = ("uint256", "uint256", "uint128", "uint128", "bytes")

    liquidity: Uint256
    amount0_max: Uint128
    amount1_max: Uint128
    hook_data: HexData = b""

    def abi_values(self) -> list[Any]:
        return [self.token_id, self.liquidity, self.amount0_max, self.amount1_max, self.hook_data]


class DecreaseLiquidityParams(_PositionCurrencies):
    """Remove ``liquidity`` from a position; zero liquidity collects fees only."""

    ABI: ClassVar[tuple[str, ...]] = ("uint256", "uint256", "uint128", "uint128", "bytes")

    liquidity: Uint256
    amount0_min: Uint128
    amount1_min: Uint128
    hook_data: HexData = b""

    def abi_values(self) -> list[Any]:
        return [self.token_id, self.liquidity, self.amount0_min, self.amount1_min, self.hook_data]


class BurnPositionParams(_PositionCurrencies):
    ABI: ClassVar[tuple[str, ...]] = ("uint256", "uint128", "uint128", "bytes")

    amount0_min: Uint128
    amount1_min: Uint128
    hook_data: HexData = b""

    def abi_values(self) -> list[Any]:
        return [self.token_id, self.amount0_min, self.amount1_min, self.hook_data]


class _MintBase(ActionParams):
    pool_key: PoolKey
    tick_lower: int
    tick_upper: int
    amount0_max: Uint128
    amount1_max: Uint128
    owner: Address
    hook_data: HexData = b""

    @model_validator(mode="after")
    def validate_ticks(self) -> "_MintBase":
        for tick in (self.tick_lower, self.tick_upper):
            if not INT24_MIN <= tick <= INT24_MAX:
                raise ValueError(f"tick {tick} outside int24 range")
            if tick % self.pool_key.tick_spacing:
                raise ValueError(
                    f"tick {tick} is not a multiple of tick spacing {self.pool_key.tick_spacing}"
                )
        if self.tick_lower >= self.tick_upper:
            raise ValueError("tick_lower must be below tick_upper")
        return self

    def currencies(self) -> tuple[str, ...]:
        return self.pool_key.currencies


class MintPositionParams(_MintBase):
    ABI: ClassVar[tuple[str, ...]] = (
        POOL_KEY_ABI, "int24", "int24", "uint256", "uint128", "uint128", "address", "bytes",
    )

    liquidity: Uint256

    def abi_values(self) -> list[Any]:
        return [
            self.pool_key.as_abi_tuple(),
            self.tick_lower,
            self.tick_upper,
            self.liquidity,
            self.amount0_max,
            self.amount1_max,
            self.owner,
            self.hook_data,
        ]


class MintFromDeltasParams(_MintBase):
    """Mint a position sized by the open currency deltas of earlier actions."""

    ABI: ClassVar[tuple[str, ...]] = (
        POOL_KEY_ABI, "int24", "int24", "uint128", "uint128", "address", "bytes",
    )

    def abi_values(self) -> list[Any]:
        return [
            self.pool_key.as_abi_tuple(),
            self.tick_lower,
            self.tick_upper,
            self.amount0_max,
            self.amount1_max,
            self.owner,
            self.hook_data,
        ]


class SettlePairParams(ActionParams):
    ABI: ClassVar[tuple[str, ...]] = ("address", "address")

    currency0: Address
    currency1: Address

    def abi_values(self) -> list[Any]:
        return [self.currency0, self.currency1]

    def currencies(self) -> tuple[str, ...]:
        return (self.currency0, self.currency1)


class TakePairParams(ActionParams):
    ABI: ClassVar[tuple[str, ...]] = ("address", "address", "address")

    currency0: Address
    currency1: Address
    recipient: Address

    def abi_values(self) -> list[Any]:
        return [self.currency0, self.currency1, self.recipient]

    def currencies(self) -> tuple[str, ...]:
        return (self.currency0, self.currency1)


class CloseCurrencyParams(ActionParams):
    ABI: ClassVar[tuple[str, ...]] = ("address",)

    currency: Address

    def abi_values(self) -> list[Any]:
        return [self.currency]

    def currencies(self) -> tuple[str, ...]:
        return (self.currency,)


class SweepParams(ActionParams):
    ABI: ClassVar[tuple[str, ...]] = ("address", "address")

    currency: Address
    recipient: Address

    def abi_values(self) -> list[Any]:
        return [self.currency, self.recipient]

    def currencies(self) -> tuple[str, ...]:
        return (self.currency,)


PARAMS_BY_KIND: dict[ActionKind, type[ActionParams]] = {
    ActionKind.INCREASE_LIQUIDITY: IncreaseLiquidityParams,
    ActionKind.DECREASE_LIQUIDITY: DecreaseLiquidityParams,
    ActionKind.MINT_POSITION: MintPositionParams,
    ActionKind.BURN_POSITION: BurnPositionParams,
    ActionKind.MINT_FROM_DELTAS: MintFromDeltasParams,
    ActionKind.SETTLE_PAIR: SettlePairParams,
    ActionKind.TAKE_PAIR: TakePairParams,
    ActionKind.CLOSE_CURRENCY: CloseCurrencyParams,
    ActionKind.SWEEP: SweepParams,
}


@dataclass(frozen=True)
class Action:
    """One typed operation. Only meaningful as a member of a batch."""

    kind: ActionKind
    params: ActionParams

    @property
    def code(self) -> int:
        return ACTION_CODES[self.kind]

    @property
    def is_settlement(self) -> bool:
        return self.kind in SETTLEMENT_KINDS

    @property
    def currencies(self) -> tuple[str, ...]:
        return self.params.currencies()

    def encode_params(self) -> bytes:
        return self.params.encode()

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind.value, "params": self.params.model_dump(mode="json")}


def parse_kind(kind: ActionKind | str) -> ActionKind:
    if isinstance(kind, ActionKind):
        return kind
    try:
        return ActionKind(str(kind).upper())
    except ValueError as exc:
        raise InvalidParameters(f"unknown action kind: {kind!r}") from exc


def build_action(
    kind: ActionKind | str, parameters: ActionParams | Mapping[str, Any]
) -> Action:
    """Construct a validated action.

    Raises:
        InvalidParameters: Unknown kind, or parameters that do not match the
            kind's required shape.
    """
    action_kind = parse_kind(kind)
    model = PARAMS_BY_KIND[action_kind]

    if isinstance(parameters, ActionParams):
        if type(parameters) is not model:
            raise InvalidParameters(
                f"{action_kind.value} expects {model.__name__}, got {type(parameters).__name__}"
            )
        return Action(kind=action_kind, params=parameters)

    if not isinstance(parameters, Mapping):
        raise InvalidParameters(
            f"{action_kind.value} parameters must be a mapping, got {type(parameters).__name__}"
        )
    try:
        params = model.model_validate(dict(parameters))
    except ValidationError as exc:
        raise InvalidParameters(f"invalid {action_kind.value} parameters: {exc}") from exc
    return Action(kind=action_kind, params=params)
