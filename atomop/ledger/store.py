"""Persistence for ledger snapshots and the notification journal."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session

from atomop.data.storage import ClearedPositionDB, NotificationDB, PositionRecordDB
from atomop.ledger.records import NotificationKind, PositionRecord

logger = logging.getLogger(__name__)


class LedgerStore:
    """Stores ledger records and applied notifications.

    Liquidity and ids are uint256 on-chain, so they are persisted as decimal
    strings.
    """

    def __init__(self, db_session: Session) -> None:
        self.db_session = db_session

    def record_notification(
        self,
        kind: NotificationKind,
        position_id: int,
        caller: str,
        pool_id: str | None,
        owner: str | None,
        balance_change: int,
        payload: dict[str, Any] | None = None,
    ) -> None:
        """Append one applied notification to the journal."""
        try:
            self.db_session.add(
                NotificationDB(
                    kind=NotificationKind(kind).value,
                    position_id=str(position_id),
                    caller=caller,
                    pool_id=pool_id,
                    owner=owner,
                    balance_change=str(balance_change),
                    payload=payload,
                    applied_at=datetime.utcnow(),
                )
            )
            self.db_session.commit()
        except Exception:
            self.db_session.rollback()
            raise

    def save_positions(
        self, records: Iterable[PositionRecord], cleared: Iterable[int] = ()
    ) -> int:
        """Replace the persisted snapshot with ``records`` and ``cleared`` ids.

        Returns the number of position rows written.
        """
        rows = [
            PositionRecordDB(
                position_id=str(record.position_id),
                pool_id=record.pool_id,
                owner=record.owner,
                liquidity=str(record.liquidity),
            )
            for record in records
        ]
        cleared_rows = [ClearedPositionDB(position_id=str(pid)) for pid in sorted(set(cleared))]
        try:
            self.db_session.query(PositionRecordDB).delete()
            self.db_session.query(ClearedPositionDB).delete()
            self.db_session.add_all(rows)
            self.db_session.add_all(cleared_rows)
            self.db_session.commit()
        except Exception:
            self.db_session.rollback()
            raise
        logger.info(
            f"Saved ledger snapshot with {len(rows)} positions, {len(cleared_rows)} cleared"
        )
        return len(rows)

    def load_positions(self) -> list[PositionRecord]:
        rows = self.db_session.query(PositionRecordDB).all()
        records = [
            PositionRecord(
                position_id=int(row.position_id),
                pool_id=row.pool_id,
                owner=row.owner,
                liquidity=int(row.liquidity),
            )
            for row in rows
        ]
        return sorted(records, key=lambda r: r.position_id)

    def load_cleared(self) -> list[int]:
        return sorted(int(row.position_id) for row in self.db_session.query(ClearedPositionDB).all())

    def recent_notifications(self, limit: int = 50) -> list[NotificationDB]:
        return (
            self.db_session.query(NotificationDB)
            .order_by(NotificationDB.id.desc())
            .limit(limit)
            .all()
        )
