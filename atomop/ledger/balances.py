"""Liquidity balance table keyed by (pool_id, owner)."""

from __future__ import annotations

from atomop.errors import InconsistentState

BalanceKey = tuple[str, str]


class LedgerBalanceTable:
    """
    Balance table mapping (pool_id, owner) -> liquidity.

    Notes:
    - Balances are always non-negative; a debit that would go below zero
      raises ``InconsistentState`` and leaves the table unchanged.
    - Zero balances are omitted to keep the table sparse.
    - Owners are compared in checksum form; callers normalize before use.
    """

    def __init__(self) -> None:
        self._balances: dict[BalanceKey, int] = {}

    def get(self, pool_id: str, owner: str) -> int:
        """Get balance for (pool_id, owner). Returns 0 if not found."""
        return self._balances.get((pool_id, owner), 0)

    def _set(self, pool_id: str, owner: str, amount: int) -> None:
        if amount < 0:
            raise InconsistentState(f"ledger balance cannot be negative: {amount}")
        if amount == 0:
            self._balances.pop((pool_id, owner), None)
        else:
            self._balances[(pool_id, owner)] = amount

    def credit(self, pool_id: str, owner: str, amount: int) -> None:
        if amount < 0:
            raise InconsistentState(f"credit must be non-negative: {amount}")
        self._set(pool_id, owner, self.get(pool_id, owner) + amount)

    def debit(self, pool_id: str, owner: str, amount: int) -> None:
        if amount < 0:
            raise InconsistentState(f"debit must be non-negative: {amount}")
        current = self.get(pool_id, owner)
        if current < amount:
            raise InconsistentState(
                f"debit of {amount} exceeds balance {current} for pool {pool_id} owner {owner}"
            )
        self._set(pool_id, owner, current - amount)

    def get_all_balances(self) -> dict[BalanceKey, int]:
        """Return all balances."""
        return dict(self._balances)

    def __len__(self) -> int:
        return len(self._balances)

    def __repr__(self) -> str:
        return f"LedgerBalanceTable({len(self._balances)} entries)"
