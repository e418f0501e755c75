"""Ledger record types."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ModifyPolicy(str, Enum):
    """How a non-positive modify notification is absorbed.

    CLEAR drops tracking for the position. RECONCILE additionally reads the
    manager's current liquidity and re-tracks whatever remains.
    """

    CLEAR = "clear"
    RECONCILE = "reconcile"


class NotificationKind(str, Enum):
    SUBSCRIBE = "subscribe"
    UNSUBSCRIBE = "unsubscribe"
    MODIFY = "modify"
    BURN = "burn"


@dataclass(frozen=True)
class PositionRecord:
    """A tracked external position."""

    position_id: int
    pool_id: str
    owner: str
    liquidity: int

    @property
    def balance_key(self) -> tuple[str, str]:
        return (self.pool_id, self.owner)
