"""Batch recipes for common position operations.

Every recipe returns a batch that already passes the settlement check. When
a pool's currency0 is native currency, liquidity-adding recipes forward the
maximum native amount and sweep any excess back to the owner.
"""

from __future__ import annotations

import time
from collections.abc import Callable

from atomop.config import get_settings
from atomop.data.models import PoolKey
from atomop.execution.actions import ActionKind
from atomop.execution.batch import ActionBatch
from atomop.utils.addresses import NATIVE_CURRENCY, is_native


class BatchPlanner:
    """Builds closed batches with a deadline derived from settings."""

    def __init__(
        self,
        deadline_seconds: int | None = None,
        clock: Callable[[], int] | None = None,
    ) -> None:
        settings = get_settings()
        self.deadline_seconds = deadline_seconds or settings.default_deadline_seconds
        self.clock = clock or (lambda: int(time.time()))

    def _new_batch(self, native_value: int = 0) -> ActionBatch:
        return ActionBatch(deadline=self.clock() + self.deadline_seconds, native_value=native_value)

    def _settle(self, batch: ActionBatch, currency0: str, currency1: str, refund_to: str) -> None:
        batch.add_action(ActionKind.SETTLE_PAIR, {"currency0": currency0, "currency1": currency1})
        if is_native(currency0):
            batch.add_action(
                ActionKind.SWEEP, {"currency": NATIVE_CURRENCY, "recipient": refund_to}
            )

    def mint_position(
        self,
        pool_key: PoolKey,
        tick_lower: int,
        tick_upper: int,
        liquidity: int,
        amount0_max: int,
        amount1_max: int,
        owner: str,
        hook_data: bytes = b"",
    ) -> ActionBatch:
        """MINT_POSITION, then SETTLE_PAIR (and a native SWEEP when needed)."""
        batch = self._new_batch(amount0_max if is_native(pool_key.currency0) else 0)
        batch.add_action(
            ActionKind.MINT_POSITION,
            {
                "pool_key": pool_key,
                "tick_lower": tick_lower,
                "tick_upper": tick_upper,
                "liquidity": liquidity,
                "amount0_max": amount0_max,
                "amount1_max": amount1_max,
                "owner": owner,
                "hook_data": hook_data,
            },
        )
        self._settle(batch, pool_key.currency0, pool_key.currency1, owner)
        return batch

    def increase_liquidity(
        self,
        token_id: int,
        pool_key: PoolKey,
        liquidity: int,
        amount0_max: int,
        amount1_max: int,
        refund_to: str,
        hook_data: bytes = b"",
    ) -> ActionBatch:
        batch = self._new_batch(amount0_max if is_native(pool_key.currency0) else 0)
        batch.add_action(
            ActionKind.INCREASE_LIQUIDITY,
            {
                "token_id": token_id,
                "currency0": pool_key.currency0,
                "currency1": pool_key.currency1,
                "liquidity": liquidity,
                "amount0_max": amount0_max,
                "amount1_max": amount1_max,
                "hook_data": hook_data,
            },
        )
        self._settle(batch, pool_key.currency0, pool_key.currency1, refund_to)
        return batch

    def decrease_liquidity(
        self,
        token_id: int,
        pool_key: PoolKey,
        liquidity: int,
        amount0_min: int,
        amount1_min: int,
        recipient: str,
        hook_data: bytes = b"",
    ) -> ActionBatch:
        batch = self._new_batch()
        batch.add_action(
            ActionKind.DECREASE_LIQUIDITY,
            {
                "token_id": token_id,
                "currency0": pool_key.currency0,
                "currency1": pool_key.currency1,
                "liquidity": liquidity,
                "amount0_min": amount0_min,
                "amount1_min": amount1_min,
                "hook_data": hook_data,
            },
        )
        batch.add_action(
            ActionKind.TAKE_PAIR,
            {
                "currency0": pool_key.currency0,
                "currency1": pool_key.currency1,
                "recipient": recipient,
            },
        )
        return batch

    def collect_fees(self, token_id: int, pool_key: PoolKey, recipient: str) -> ActionBatch:
        """A zero-liquidity decrease: only accrued fees are taken."""
        return self.decrease_liquidity(token_id, pool_key, 0, 0, 0, recipient)

    def burn_position(
        self,
        token_id: int,
        pool_key: PoolKey,
        amount0_min: int,
        amount1_min: int,
        recipient: str,
        hook_data: bytes = b"",
    ) -> ActionBatch:
        batch = self._new_batch()
        batch.add_action(
            ActionKind.BURN_POSITION,
            {
                "token_id": token_id,
                "currency0": pool_key.currency0,
                "currency1": pool_key.currency1,
                "amount0_min": amount0_min,
                "amount1_min": amount1_min,
                "hook_data": hook_data,
            },
        )
        batch.add_action(
            ActionKind.TAKE_PAIR,
            {
                "currency0": pool_key.currency0,
                "currency1": pool_key.currency1,
                "recipient": recipient,
            },
        )
        return batch

    def reposition(
        self,
        token_id: int,
        pool_key: PoolKey,
        tick_lower: int,
        tick_upper: int,
        amount0_max: int,
        amount1_max: int,
        owner: str,
        amount0_min: int = 0,
        amount1_min: int = 0,
    ) -> ActionBatch:
        """Move a position to a new range in one batch.

        The burn frees the old position's currencies, the mint consumes them as
        open deltas, and the take returns whatever is left to ``owner``. The
        new position id is only known after execution (``next_operation_id``
        read beforehand).
        """
        batch = self._new_batch()
        batch.add_action(
            ActionKind.BURN_POSITION,
            {
                "token_id": token_id,
                "currency0": pool_key.currency0,
                "currency1": pool_key.currency1,
                "amount0_min": amount0_min,
                "amount1_min": amount1_min,
            },
        )
        batch.add_action(
            ActionKind.MINT_FROM_DELTAS,
            {
                "pool_key": pool_key,
                "tick_lower": tick_lower,
                "tick_upper": tick_upper,
                "amount0_max": amount0_max,
                "amount1_max": amount1_max,
                "owner": owner,
            },
        )
        batch.add_action(
            ActionKind.TAKE_PAIR,
            {
                "currency0": pool_key.currency0,
                "currency1": pool_key.currency1,
                "recipient": owner,
            },
        )
        return batch
