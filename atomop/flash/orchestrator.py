"""Flash-operation orchestrator.

Borrows from the lending pool on behalf of a caller-supplied receiver, hands
the funds to that receiver inside the pool's callback, then collects
principal plus fee and approves exactly that much back to the pool.

State machine per operation::

    IDLE -> REQUESTED -> AWAITING_CALLBACK -> SETTLED
                      \\-> REJECTED  (authorization failure)

A finished operation (SETTLED or REJECTED) may be followed by a new one.
Any failure inside the borrow reverts it as a unit; the orchestrator then
returns to the state it had before ``initiate`` was called.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from atomop.config import get_settings
from atomop.data.interfaces import CallbackReceiver, FlashPool, FungibleAsset
from atomop.errors import (
    AtomicOperationError,
    ExternalExecutionFailed,
    InconsistentState,
    InvalidParameters,
    SecurityRejection,
)
from atomop.flash.context import FlashContext
from atomop.flash.guard import CallbackAuthorizationGuard
from atomop.utils.addresses import normalize_address, same_address

logger = logging.getLogger(__name__)


class FlashState(str, Enum):
    IDLE = "IDLE"
    REQUESTED = "REQUESTED"
    AWAITING_CALLBACK = "AWAITING_CALLBACK"
    SETTLED = "SETTLED"
    REJECTED = "REJECTED"


IN_FLIGHT = frozenset({FlashState.REQUESTED, FlashState.AWAITING_CALLBACK})


@dataclass(frozen=True)
class CallbackRequest:
    """What the pool passes back into the orchestrator.

    Fields are taken as-is; nothing is validated until the guard has checked
    ``authority`` and ``initiator``.
    """

    asset: str
    amount: int
    fee: int
    initiator: str
    authority: str
    context: bytes


@dataclass(frozen=True)
class FlashSettlement:
    asset: str
    amount: int
    fee: int
    receiver: str

    @property
    def repayment(self) -> int:
        return self.amount + self.fee


@dataclass
class _Pending:
    receiver: CallbackReceiver
    receiver_address: str
    asset: str
    amount: int
    fee: int | None = None


class FlashOrchestrator:
    """Runs one flash operation at a time for untrusted receivers."""

    def __init__(
        self,
        address: str,
        pool: FlashPool,
        tokens: Callable[[str], FungibleAsset],
        trusted_pool: str | None = None,
        referral_code: int | None = None,
    ) -> None:
        """Initialize orchestrator.

        Args:
            address: Account this orchestrator acts as (the borrow initiator).
            pool: Pool handle bound to ``address``.
            tokens: Returns a token handle bound to ``address`` for an asset.
            trusted_pool: Only address allowed to deliver callbacks; defaults
                to ``pool.address``.
            referral_code: Passed through to the pool; defaults to settings.
        """
        self.address = normalize_address(address, "orchestrator address")
        self.pool = pool
        self.tokens = tokens
        self.guard = CallbackAuthorizationGuard(
            trusted_authority=trusted_pool or pool.address,
            self_address=self.address,
            name="flash",
        )
        if referral_code is None:
            referral_code = get_settings().flash_referral_code
        self.referral_code = referral_code

        self.state = FlashState.IDLE
        self._pending: _Pending | None = None
        self._dispatching = False
        self.last_settlement: FlashSettlement | None = None

    def initiate(
        self,
        receiver: CallbackReceiver,
        asset: str,
        amount: int,
        user_data: bytes = b"",
    ) -> FlashSettlement:
        """Borrow ``amount`` of ``asset`` for ``receiver``.

        Returns the settlement once the pool has been repaid.

        Raises:
            InvalidParameters: Bad asset, amount or user data.
            InconsistentState: Another operation is already in flight.
            SecurityRejection: The callback failed authorization.
            ExternalExecutionFailed: The pool or the receiver failed.
        """
        if self.state in IN_FLIGHT:
            raise InconsistentState(f"flash operation already in flight (state={self.state.value})")

        asset = normalize_address(asset, "asset")
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise InvalidParameters(f"flash amount must be a positive integer, got {amount!r}")
        context = FlashContext.create(receiver.address, user_data)

        previous = self.state
        self.state = FlashState.REQUESTED
        self._pending = _Pending(
            receiver=receiver,
            receiver_address=context.caller,
            asset=asset,
            amount=amount,
        )

        logger.info(
            f"Requesting flash borrow of {amount} {asset}",
            extra={"asset": asset, "amount": amount, "receiver": context.caller},
        )

        try:
            self.state = FlashState.AWAITING_CALLBACK
            self.pool.borrow(self.address, asset, amount, context.encode(), self.referral_code)
            if self.state != FlashState.SETTLED:
                raise ExternalExecutionFailed("pool returned without delivering the callback")
        except SecurityRejection:
            self.state = FlashState.REJECTED
            raise
        except AtomicOperationError:
            self.state = previous
            raise
        except Exception as exc:
            self.state = previous
            logger.error(f"Flash borrow of {amount} {asset} failed: {exc}")
            raise ExternalExecutionFailed(f"flash borrow failed: {exc}") from exc
        finally:
            pending, self._pending = self._pending, None

        settlement = FlashSettlement(
            asset=asset,
            amount=amount,
            fee=pending.fee or 0,
            receiver=pending.receiver_address,
        )
        self.last_settlement = settlement
        logger.info(
            f"Flash operation settled: {amount} {asset} + fee {settlement.fee}",
            extra={"asset": asset, "amount": amount, "fee": settlement.fee},
        )
        return settlement

    def on_callback(self, request: CallbackRequest) -> bool:
        """Entry point for the pool while a borrow is in progress."""
        self.guard.authorize(request.authority, request.initiator)

        pending = self._pending
        if self.state != FlashState.AWAITING_CALLBACK or pending is None:
            raise InconsistentState(f"unexpected flash callback in state {self.state.value}")
        if self._dispatching:
            raise InconsistentState("nested flash callback while dispatching to receiver")

        context = FlashContext.decode(request.context)
        if not same_address(context.caller, pending.receiver_address):
            raise InconsistentState(f"callback context names {context.caller}, not the requester")
        if not same_address(request.asset, pending.asset) or request.amount != pending.amount:
            raise InconsistentState(
                f"callback for {request.amount} {request.asset} does not match the request"
            )
        fee = request.fee
        if isinstance(fee, bool) or not isinstance(fee, int) or fee < 0:
            raise InvalidParameters(f"callback fee must be a non-negative integer, got {fee!r}")

        token = self.tokens(pending.asset)
        repayment = pending.amount + fee

        self._dispatching = True
        try:
            self._call_token(token.transfer, pending.receiver_address, pending.amount)
            try:
                pending.receiver.on_flash_callback(
                    pending.asset, pending.amount, fee, context.user_data
                )
            except Exception as exc:
                logger.error(f"Flash receiver {pending.receiver_address} failed: {exc}")
                raise ExternalExecutionFailed(f"receiver callback failed: {exc}") from exc
            self._call_token(token.transfer_from, pending.receiver_address, self.address, repayment)
            self._call_token(token.approve, self.guard.trusted_authority, repayment)
        finally:
            self._dispatching = False

        pending.fee = fee
        self.state = FlashState.SETTLED
        return True

    @staticmethod
    def _call_token(method: Callable[..., None], *args: object) -> None:
        try:
            method(*args)
        except AtomicOperationError:
            raise
        except Exception as exc:
            raise ExternalExecutionFailed(f"token call failed: {exc}") from exc
