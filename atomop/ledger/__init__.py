"""Position-lifecycle ledger."""

from atomop.ledger.balances import LedgerBalanceTable
from atomop.ledger.lifecycle import PositionLifecycleLedger
from atomop.ledger.records import ModifyPolicy, NotificationKind, PositionRecord
from atomop.ledger.store import LedgerStore

__all__ = [
    "LedgerBalanceTable",
    "LedgerStore",
    "ModifyPolicy",
    "NotificationKind",
    "PositionLifecycleLedger",
    "PositionRecord",
]
