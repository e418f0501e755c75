"""Collaborator interfaces.

The engine never owns the settlement substrate. Everything it drives is
reached through these typed protocols, implemented on-chain by
``atomop.services.chain`` and in-process by test doubles.
"""

from __future__ import annotations

from typing import Protocol

from atomop.data.models import OperationResult, PoolKey, PositionInfo


class PositionProcessor(Protocol):
    """External position manager: executes batches and answers position queries."""

    address: str

    def next_operation_id(self) -> int:
        """Identifier the next minted position will receive."""

    def execute_batch(
        self, encoded_actions: bytes, native_value: int, deadline: int
    ) -> OperationResult:
        """Execute an encoded batch atomically. Raises on any failure."""

    def owner_of(self, position_id: int) -> str:
        """Owner address. Raises ``UnknownPosition`` if the id does not exist."""

    def current_pool_and_position(self, position_id: int) -> tuple[PoolKey, PositionInfo]:
        """Pool key and packed position info for ``position_id``."""

    def current_liquidity(self, position_id: int) -> int:
        """Current liquidity of ``position_id``."""


class FungibleAsset(Protocol):
    """Token handle bound to one account (the account every call acts as)."""

    address: str

    def transfer(self, to: str, amount: int) -> None: ...

    def transfer_from(self, owner: str, to: str, amount: int) -> None: ...

    def approve(self, spender: str, amount: int) -> None: ...

    def balance_of(self, account: str) -> int: ...

    def allowance(self, owner: str, spender: str) -> int: ...


class FlashPool(Protocol):
    """Lending pool offering single-asset flash borrows.

    While ``borrow`` runs, the pool calls ``on_callback`` on the receiver and
    pulls ``amount + fee`` afterwards; any failure reverts the whole borrow.
    """

    address: str

    def borrow(
        self, receiver: str, asset: str, amount: int, context: bytes, referral: int
    ) -> None: ...


class CallbackReceiver(Protocol):
    """Caller-supplied code that uses flash-borrowed funds. Fully untrusted."""

    address: str

    def on_flash_callback(self, asset: str, amount: int, fee: int, user_data: bytes) -> None: ...
