"""Settlement accounting for action batches.

Everything here is pure: no I/O, no processor calls. Predictions are worst
case for the initiator: liquidity-adding actions are charged their maximum
spend and liquidity-removing actions are credited only their minimum output.
Settlement-class actions move the value already accounted for, so they
contribute nothing.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from atomop.errors import InvalidParameters, UnsettledCurrency
from atomop.execution.actions import (
    Action,
    BurnPositionParams,
    DecreaseLiquidityParams,
    IncreaseLiquidityParams,
    MintFromDeltasParams,
    MintPositionParams,
)
from atomop.utils.addresses import NATIVE_CURRENCY, normalize_address

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CurrencyDelta:
    """Signed movement of one asset: negative is supplied, positive is returned."""

    asset: str
    amount: int

    @property
    def is_outflow(self) -> bool:
        return self.amount < 0


def _action_flows(action: Action) -> list[tuple[str, int]]:
    params = action.params
    if isinstance(params, (IncreaseLiquidityParams, MintPositionParams, MintFromDeltasParams)):
        c0, c1 = params.currencies()
        return [(c0, -params.amount0_max), (c1, -params.amount1_max)]
    if isinstance(params, (DecreaseLiquidityParams, BurnPositionParams)):
        c0, c1 = params.currencies()
        return [(c0, params.amount0_min), (c1, params.amount1_min)]
    return [(currency, 0) for currency in action.currencies]


def predict_deltas(actions: Iterable[Action]) -> dict[str, CurrencyDelta]:
    """Accumulate expected net flow per asset, in first-touch order."""
    totals: dict[str, int] = {}
    for action in actions:
        for asset, amount in _action_flows(action):
            totals[asset] = totals.get(asset, 0) + amount
    return {asset: CurrencyDelta(asset, amount) for asset, amount in totals.items()}


def unsettled_currencies(actions: Iterable[Action], native_value: int = 0) -> list[str]:
    """Assets with no settlement-class action after their last other touch.

    A forwarded native value counts as a touch of the native currency that
    precedes every action.
    """
    last_touch: dict[str, int] = {}
    last_settle: dict[str, int] = {}
    if native_value:
        last_touch[NATIVE_CURRENCY] = -1

    for index, action in enumerate(actions):
        target = last_settle if action.is_settlement else last_touch
        for currency in action.currencies:
            target[currency] = index

    return [asset for asset, index in last_touch.items() if last_settle.get(asset, -2) < index]


def validate_closed(actions: Iterable[Action], native_value: int = 0) -> bool:
    return not unsettled_currencies(actions, native_value)


def require_closed(actions: Iterable[Action], native_value: int = 0) -> None:
    """Raise ``UnsettledCurrency`` unless every touched asset is closed."""
    unsettled = unsettled_currencies(actions, native_value)
    if unsettled:
        raise UnsettledCurrency(unsettled)


def check_spend_limits(
    deltas: Mapping[str, CurrencyDelta], limits: Mapping[str, int]
) -> None:
    """Reject predicted outflows above caller limits.

    Assets absent from ``limits`` are unrestricted.

    Raises:
        InvalidParameters: An outflow exceeds its limit, or a limit is malformed.
    """
    normalized: dict[str, int] = {}
    for asset, limit in limits.items():
        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 0:
            raise InvalidParameters(f"spend limit for {asset} must be a non-negative integer")
        normalized[normalize_address(asset, "spend limit asset")] = limit

    for asset, delta in deltas.items():
        limit = normalized.get(asset)
        if limit is not None and -delta.amount > limit:
            raise InvalidParameters(
                f"predicted spend of {-delta.amount} {asset} exceeds limit {limit}"
            )


def reconcile_deltas(
    predicted: Mapping[str, CurrencyDelta], reported: Mapping[str, int]
) -> list[str]:
    """Compare reported movement to the worst-case prediction.

    Reporting less than predicted for an asset, or movement of an asset the
    batch never touched, is a discrepancy. Returns human-readable findings.
    """
    findings: list[str] = []
    for raw_asset, actual in reported.items():
        asset = normalize_address(raw_asset, "reported asset")
        expected = predicted.get(asset)
        if expected is None:
            if actual != 0:
                findings.append(f"{asset}: unpredicted movement {actual}")
        elif actual < expected.amount:
            findings.append(f"{asset}: reported {actual} below worst case {expected.amount}")
    if findings:
        logger.warning(
            f"Reported deltas disagree with prediction ({len(findings)} findings)",
            extra={"findings": findings},
        )
    return findings


__all__ = [
    "CurrencyDelta",
    "check_spend_limits",
    "predict_deltas",
    "reconcile_deltas",
    "require_closed",
    "unsettled_currencies",
    "validate_closed",
]
