"""Error taxonomy for atomic operations.

Every error aborts the enclosing operation in full. Nothing here is retried
automatically; ``retryable`` only tells the caller whether resubmitting a
corrected request can succeed.
"""

from __future__ import annotations


class AtomicOperationError(Exception):
    """Base class for all engine errors."""

    retryable = False


class InvalidParameters(AtomicOperationError):
    """Malformed local input (action parameters, context payloads)."""


class UnsettledCurrency(AtomicOperationError):
    """A batch leaves at least one touched currency without a later settlement."""

    def __init__(self, assets: list[str]) -> None:
        self.assets = assets
        super().__init__(f"unsettled currencies: {', '.join(assets)}")


class DeadlineExpired(AtomicOperationError):
    """The batch deadline is already in the past."""

    retryable = True

    def __init__(self, deadline: int, now: int) -> None:
        self.deadline = deadline
        self.now = now
        super().__init__(f"deadline {deadline} expired (now={now})")


class SecurityRejection(AtomicOperationError):
    """Authorization failure. Always fatal to the call; worth alerting on."""


class UnauthorizedCaller(SecurityRejection):
    """The call did not originate from the single trusted counter-party."""

    def __init__(self, caller: str, expected: str) -> None:
        self.caller = caller
        self.expected = expected
        super().__init__(f"unauthorized caller {caller} (expected {expected})")


class ForeignInitiator(SecurityRejection):
    """The callback belongs to an operation this orchestrator did not start."""

    def __init__(self, initiator: str, expected: str) -> None:
        self.initiator = initiator
        self.expected = expected
        super().__init__(f"foreign initiator {initiator} (expected {expected})")


class DataIntegrityError(AtomicOperationError):
    """Caller or upstream bug. Never patched over."""


class UnknownPosition(DataIntegrityError):
    """The external manager reports that the position does not exist."""

    def __init__(self, position_id: int) -> None:
        self.position_id = position_id
        super().__init__(f"unknown position {position_id}")


class InconsistentState(DataIntegrityError):
    """The request contradicts tracked state (e.g. a debit that would go negative)."""


class ExternalExecutionFailed(AtomicOperationError):
    """Opaque failure surfaced by a collaborator.

    The original exception is kept as ``__cause__``; no partial-success state
    is reported because none is recoverable.
    """


class OutcomeUnknown(ExternalExecutionFailed):
    """A transaction was broadcast but its result could not be observed.

    It may still be included later, so the submission must not be repeated
    until ``tx_hash`` is resolved.
    """

    def __init__(self, tx_hash: str, reason: str) -> None:
        self.tx_hash = tx_hash
        super().__init__(f"outcome of transaction {tx_hash} unknown: {reason}")
