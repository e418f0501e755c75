"""Tests for settlement accounting."""

import pytest

from atomop.errors import InvalidParameters, UnsettledCurrency
from atomop.execution.accountant import (
    CurrencyDelta,
    check_spend_limits,
    predict_deltas,
    reconcile_deltas,
    require_closed,
    unsettled_currencies,
    validate_closed,
)
from atomop.execution.actions import ActionKind, build_action
from atomop.utils.addresses import NATIVE_CURRENCY
from fakes import ALICE, TOKEN0, TOKEN1


def _mint_from_deltas(pool_key):
    return build_action(
        ActionKind.MINT_FROM_DELTAS,
        {
            "pool_key": pool_key,
            "tick_lower": -600,
            "tick_upper": 600,
            "amount0_max": 5_000,
            "amount1_max": 7_000,
            "owner": ALICE,
        },
    )


def _take_pair():
    return build_action(
        ActionKind.TAKE_PAIR, {"currency0": TOKEN0, "currency1": TOKEN1, "recipient": ALICE}
    )


def _burn(token_id=1, min0=100, min1=200):
    return build_action(
        ActionKind.BURN_POSITION,
        {
            "token_id": token_id,
            "currency0": TOKEN0,
            "currency1": TOKEN1,
            "amount0_min": min0,
            "amount1_min": min1,
        },
    )


def test_mint_from_deltas_closed_by_take_pair(pool_key):
    """[MINT_FROM_DELTAS, TAKE_PAIR] is closed; dropping TAKE_PAIR opens both currencies."""
    mint = _mint_from_deltas(pool_key)

    assert validate_closed([mint, _take_pair()])
    assert not validate_closed([mint])
    assert unsettled_currencies([mint]) == [TOKEN0, TOKEN1]


def test_settlement_must_come_after_last_touch(pool_key):
    """A settlement that precedes the action it should close does not count."""
    assert not validate_closed([_take_pair(), _mint_from_deltas(pool_key)])


def test_partial_settlement_reports_only_open_currency(pool_key):
    close0 = build_action(ActionKind.CLOSE_CURRENCY, {"currency": TOKEN0})

    with pytest.raises(UnsettledCurrency) as exc_info:
        require_closed([_mint_from_deltas(pool_key), close0])

    assert exc_info.value.assets == [TOKEN1]


def test_forwarded_native_value_must_be_swept():
    close0 = build_action(ActionKind.CLOSE_CURRENCY, {"currency": TOKEN0})
    sweep = build_action(ActionKind.SWEEP, {"currency": NATIVE_CURRENCY, "recipient": ALICE})

    assert validate_closed([close0])
    assert unsettled_currencies([close0], native_value=1) == [NATIVE_CURRENCY]
    assert validate_closed([close0, sweep], native_value=1)


def test_predict_deltas_is_worst_case(pool_key):
    """Adds are charged their max, removals credited their min, settlements nothing."""
    deltas = predict_deltas([_burn(min0=100, min1=200), _mint_from_deltas(pool_key), _take_pair()])

    assert deltas[TOKEN0] == CurrencyDelta(TOKEN0, 100 - 5_000)
    assert deltas[TOKEN1] == CurrencyDelta(TOKEN1, 200 - 7_000)
    assert deltas[TOKEN0].is_outflow


def test_predict_deltas_for_settlement_only_batch():
    deltas = predict_deltas([_take_pair()])

    assert deltas == {TOKEN0: CurrencyDelta(TOKEN0, 0), TOKEN1: CurrencyDelta(TOKEN1, 0)}


def test_spend_limits(pool_key):
    deltas = predict_deltas([_mint_from_deltas(pool_key), _take_pair()])

    check_spend_limits(deltas, {TOKEN0: 5_000})
    check_spend_limits(deltas, {TOKEN0.lower(): 10_000, TOKEN1: 7_000})

    with pytest.raises(InvalidParameters, match="exceeds limit"):
        check_spend_limits(deltas, {TOKEN1: 6_999})
    with pytest.raises(InvalidParameters):
        check_spend_limits(deltas, {TOKEN1: -1})


def test_reconcile_flags_worse_than_predicted(pool_key):
    predicted = predict_deltas([_mint_from_deltas(pool_key), _take_pair()])

    assert reconcile_deltas(predicted, {TOKEN0: -4_000, TOKEN1: -7_000}) == []

    findings = reconcile_deltas(predicted, {TOKEN0: -5_001, ALICE: 3})

    assert len(findings) == 2
    assert any("below worst case" in f for f in findings)
    assert any("unpredicted movement" in f for f in findings)
