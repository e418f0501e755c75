"""Position-lifecycle ledger.

Mirrors lifecycle notifications pushed by the external position manager into
a (pool_id, owner) liquidity balance table. Each handler:

1. rejects any caller other than the trusted manager,
2. reads whatever it needs from the manager (never in ``on_burn``),
3. checks that the change is valid against tracked state,
4. journals it, then applies it.

Steps 1-3 never mutate anything, so a failing notification leaves the ledger
exactly as it was.

Balances are derivable: for every (pool, owner) the balance equals the sum
of liquidity over that owner's tracked records in that pool.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from dataclasses import replace
from typing import Any, Protocol, TypeVar

from atomop.config import get_settings
from atomop.data.interfaces import PositionProcessor
from atomop.errors import (
    AtomicOperationError,
    ExternalExecutionFailed,
    InconsistentState,
    InvalidParameters,
)
from atomop.flash.guard import CallbackAuthorizationGuard
from atomop.ledger.balances import LedgerBalanceTable
from atomop.ledger.records import ModifyPolicy, NotificationKind, PositionRecord
from atomop.utils.addresses import normalize_address

logger = logging.getLogger(__name__)

T = TypeVar("T")


class NotificationJournal(Protocol):
    def record_notification(
        self,
        kind: NotificationKind,
        position_id: int,
        caller: str,
        pool_id: str | None,
        owner: str | None,
        balance_change: int,
        payload: dict[str, Any] | None = None,
    ) -> None: ...


class PositionLifecycleLedger:
    """Notification-driven ledger of externally owned positions."""

    def __init__(
        self,
        manager: PositionProcessor,
        trusted_manager: str | None = None,
        policy: ModifyPolicy | str | None = None,
        journal: NotificationJournal | None = None,
    ) -> None:
        """Initialize ledger.

        Args:
            manager: Position manager used for state queries.
            trusted_manager: Only caller allowed to deliver notifications;
                defaults to ``manager.address``.
            policy: Non-positive modify policy; defaults to settings.
            journal: Optional sink for applied notifications.
        """
        self.manager = manager
        self.guard = CallbackAuthorizationGuard(
            trusted_authority=trusted_manager or manager.address, name="ledger"
        )
        if policy is None:
            policy = get_settings().ledger_modify_policy
        self.policy = ModifyPolicy(policy)
        self.journal = journal

        self._balances = LedgerBalanceTable()
        self._records: dict[int, PositionRecord] = {}
        # Ids whose tracking was dropped by a non-positive modify while the
        # position may still be subscribed on the manager side.
        self._cleared: set[int] = set()
        self._in_flight: set[int] = set()

    # ------------------------------------------------------------------
    # Notification handlers
    # ------------------------------------------------------------------

    def on_subscribe(self, caller: str, position_id: int) -> PositionRecord:
        """Start tracking ``position_id`` with its current manager state."""
        self.guard.require_trusted(caller)
        position_id = _position_id(position_id)

        with self._exclusive(position_id):
            if position_id in self._records:
                raise InconsistentState(f"position {position_id} is already subscribed")

            record = self._query_record(position_id)

            self._journal(NotificationKind.SUBSCRIBE, position_id, caller, record, record.liquidity)
            self._balances.credit(record.pool_id, record.owner, record.liquidity)
            self._records[position_id] = record
            self._cleared.discard(position_id)

        logger.info(
            f"Subscribed position {position_id} with liquidity {record.liquidity}",
            extra={"position_id": position_id, "pool_id": record.pool_id, "owner": record.owner},
        )
        return record

    def on_unsubscribe(self, caller: str, position_id: int) -> None:
        """Stop tracking ``position_id``; the position must still exist."""
        self.guard.require_trusted(caller)
        position_id = _position_id(position_id)

        with self._exclusive(position_id):
            record = self._records.get(position_id)
            if record is None:
                if position_id in self._cleared:
                    self._absorb_cleared(NotificationKind.UNSUBSCRIBE, position_id, caller)
                    self._cleared.discard(position_id)
                    return
                raise InconsistentState(f"unsubscribe for untracked position {position_id}")

            # Still queryable at this point; raises UnknownPosition otherwise.
            self._call(self.manager.owner_of, position_id)

            self._check_debit(record, record.liquidity)
            self._journal(NotificationKind.UNSUBSCRIBE, position_id, caller, record, -record.liquidity)
            self._balances.debit(record.pool_id, record.owner, record.liquidity)
            del self._records[position_id]

        logger.info(
            f"Unsubscribed position {position_id}",
            extra={"position_id": position_id, "released": record.liquidity},
        )

    def on_modify(self, caller: str, position_id: int, liquidity_change: int) -> None:
        """Apply a liquidity change.

        A positive change is credited. Any non-positive change ends tracking of
        the record, debiting everything it held: the notification does not say
        whether liquidity remains. Under the reconcile policy the manager's
        current liquidity is then re-tracked.
        """
        self.guard.require_trusted(caller)
        position_id = _position_id(position_id)
        if isinstance(liquidity_change, bool) or not isinstance(liquidity_change, int):
            raise InvalidParameters(f"liquidity change must be an integer, got {liquidity_change!r}")

        with self._exclusive(position_id):
            record = self._records.get(position_id)
            if record is None:
                if position_id in self._cleared:
                    self._absorb_cleared(NotificationKind.MODIFY, position_id, caller)
                    return
                raise InconsistentState(f"modify for untracked position {position_id}")

            if liquidity_change > 0:
                updated = replace(record, liquidity=record.liquidity + liquidity_change)
                self._journal(
                    NotificationKind.MODIFY, position_id, caller, updated, liquidity_change,
                    payload={"liquidity_change": liquidity_change},
                )
                self._balances.credit(record.pool_id, record.owner, liquidity_change)
                self._records[position_id] = updated
                return

            residual = 0
            if self.policy is ModifyPolicy.RECONCILE:
                residual = self._call(self.manager.current_liquidity, position_id)
                if isinstance(residual, bool) or not isinstance(residual, int) or residual < 0:
                    raise InconsistentState(
                        f"manager reported invalid liquidity {residual!r} for {position_id}"
                    )

            self._check_debit(record, record.liquidity)
            self._journal(
                NotificationKind.MODIFY, position_id, caller, record, residual - record.liquidity,
                payload={
                    "liquidity_change": liquidity_change,
                    "policy": self.policy.value,
                    "residual": residual,
                },
            )
            self._balances.debit(record.pool_id, record.owner, record.liquidity)
            del self._records[position_id]
            if residual > 0:
                self._balances.credit(record.pool_id, record.owner, residual)
                self._records[position_id] = replace(record, liquidity=residual)
            else:
                self._cleared.add(position_id)

        if residual > 0:
            logger.info(
                f"Re-tracked position {position_id} at residual liquidity {residual}",
                extra={"position_id": position_id, "previous": record.liquidity},
            )
        else:
            # The real position may still hold liquidity; see discrepancies().
            logger.warning(
                f"Cleared tracking of position {position_id} after non-positive modify "
                f"({liquidity_change}); released {record.liquidity}",
                extra={
                    "position_id": position_id,
                    "liquidity_change": liquidity_change,
                    "released": record.liquidity,
                    "policy": self.policy.value,
                },
            )

    def on_burn(self, caller: str, position_id: int, owner: str, liquidity: int) -> None:
        """Terminal notification. The position no longer exists; uses cached data only."""
        self.guard.require_trusted(caller)
        position_id = _position_id(position_id)
        owner = normalize_address(owner, "owner")
        if isinstance(liquidity, bool) or not isinstance(liquidity, int) or liquidity < 0:
            raise InvalidParameters(f"burn liquidity must be a non-negative integer, got {liquidity!r}")

        with self._exclusive(position_id):
            record = self._records.get(position_id)
            if record is None:
                if position_id in self._cleared:
                    self._absorb_cleared(NotificationKind.BURN, position_id, caller)
                    self._cleared.discard(position_id)
                    return
                raise InconsistentState(f"burn for untracked position {position_id}")

            if record.owner != owner:
                raise InconsistentState(
                    f"burn of {position_id} names owner {owner}, tracked owner is {record.owner}"
                )
            if liquidity != record.liquidity:
                raise InconsistentState(
                    f"burn of {position_id} reports liquidity {liquidity}, "
                    f"tracked {record.liquidity}"
                )

            self._check_debit(record, liquidity)
            self._journal(NotificationKind.BURN, position_id, caller, record, -liquidity)
            self._balances.debit(record.pool_id, owner, liquidity)
            del self._records[position_id]

        logger.info(
            f"Burned position {position_id}",
            extra={"position_id": position_id, "released": liquidity},
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def balance_of(self, pool_id: str, owner: str) -> int:
        return self._balances.get(pool_id, normalize_address(owner, "owner"))

    def balances(self) -> dict[tuple[str, str], int]:
        return self._balances.get_all_balances()

    def record(self, position_id: int) -> PositionRecord | None:
        return self._records.get(position_id)

    def records(self) -> dict[int, PositionRecord]:
        return dict(self._records)

    def is_tracked(self, position_id: int) -> bool:
        return position_id in self._records

    @property
    def cleared_ids(self) -> frozenset[int]:
        return frozenset(self._cleared)

    def check_invariants(self) -> None:
        """Raise ``InconsistentState`` unless balances equal the record sums."""
        expected: dict[tuple[str, str], int] = {}
        for record in self._records.values():
            if record.liquidity < 0:
                raise InconsistentState(f"record {record.position_id} has negative liquidity")
            if record.liquidity:
                expected[record.balance_key] = expected.get(record.balance_key, 0) + record.liquidity
        actual = self._balances.get_all_balances()
        if actual != expected:
            raise InconsistentState(f"ledger balances {actual} diverge from records {expected}")

    def discrepancies(self) -> dict[int, tuple[int, int]]:
        """Tracked vs. manager-reported liquidity, for every mismatching id.

        Covers tracked records and cleared ids (tracked as 0). Read-only.
        """
        found: dict[int, tuple[int, int]] = {}
        for position_id in sorted(set(self._records) | self._cleared):
            record = self._records.get(position_id)
            tracked = record.liquidity if record else 0
            actual = self._call(self.manager.current_liquidity, position_id)
            if actual != tracked:
                found[position_id] = (tracked, actual)
        return found

    def restore(self, records: Iterable[PositionRecord], cleared: Iterable[int] = ()) -> None:
        """Replace all state from persisted records; balances are recomputed."""
        balances = LedgerBalanceTable()
        restored: dict[int, PositionRecord] = {}
        for record in records:
            if record.position_id in restored:
                raise InconsistentState(f"duplicate record for position {record.position_id}")
            balances.credit(record.pool_id, record.owner, record.liquidity)
            restored[record.position_id] = record
        self._balances = balances
        self._records = restored
        self._cleared = set(cleared) - set(restored)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @contextmanager
    def _exclusive(self, position_id: int) -> Iterator[None]:
        if position_id in self._in_flight:
            raise InconsistentState(f"re-entrant notification for position {position_id}")
        self._in_flight.add(position_id)
        try:
            yield
        finally:
            self._in_flight.discard(position_id)

    def _query_record(self, position_id: int) -> PositionRecord:
        owner = self._call(self.manager.owner_of, position_id)
        pool_key, _info = self._call(self.manager.current_pool_and_position, position_id)
        liquidity = self._call(self.manager.current_liquidity, position_id)
        if isinstance(liquidity, bool) or not isinstance(liquidity, int) or liquidity < 0:
            raise InconsistentState(f"manager reported invalid liquidity {liquidity!r} for {position_id}")
        return PositionRecord(
            position_id=position_id,
            pool_id=pool_key.pool_id,
            owner=normalize_address(owner, "owner"),
            liquidity=liquidity,
        )

    def _check_debit(self, record: PositionRecord, amount: int) -> None:
        current = self._balances.get(record.pool_id, record.owner)
        if current < amount:
            logger.error(
                f"Debit of {amount} would drive balance {current} negative",
                extra={"position_id": record.position_id, "pool_id": record.pool_id},
            )
            raise InconsistentState(
                f"debit of {amount} for position {record.position_id} exceeds balance {current}"
            )

    def _absorb_cleared(self, kind: NotificationKind, position_id: int, caller: str) -> None:
        logger.info(
            f"Ignoring {kind.value} for cleared position {position_id}",
            extra={"position_id": position_id},
        )
        self._journal(kind, position_id, caller, None, 0, payload={"cleared": True})

    def _journal(
        self,
        kind: NotificationKind,
        position_id: int,
        caller: str,
        record: PositionRecord | None,
        balance_change: int,
        payload: dict[str, Any] | None = None,
    ) -> None:
        if self.journal is None:
            return
        self._call(
            self.journal.record_notification,
            kind,
            position_id,
            normalize_address(caller, "caller"),
            record.pool_id if record else None,
            record.owner if record else None,
            balance_change,
            payload,
        )

    @staticmethod
    def _call(method: Callable[..., T], *args: Any) -> T:
        try:
            return method(*args)
        except AtomicOperationError:
            raise
        except Exception as exc:
            logger.error(f"Ledger collaborator call {getattr(method, '__name__', method)} failed: {exc}")
            raise ExternalExecutionFailed(f"collaborator call failed: {exc}") from exc


def _position_id(value: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise InvalidParameters(f"position id must be a non-negative integer, got {value!r}")
    return value
