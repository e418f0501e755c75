"""Action-batch executor.

Submits a validated batch to the external position processor as one
indivisible call. The processor provides atomicity; this module only makes
sure a trivially broken batch is never submitted.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from atomop.data.interfaces import PositionProcessor
from atomop.data.models import OperationResult
from atomop.data.storage import BatchSubmissionDB
from atomop.errors import (
    AtomicOperationError,
    DeadlineExpired,
    ExternalExecutionFailed,
    InvalidParameters,
    OutcomeUnknown,
)
from atomop.execution.accountant import (
    check_spend_limits,
    predict_deltas,
    reconcile_deltas,
    require_closed,
)
from atomop.execution.batch import ActionBatch

logger = logging.getLogger(__name__)


class BatchExecutor:
    """Runs pre-flight checks and submits batches. Never retries."""

    def __init__(
        self,
        processor: PositionProcessor,
        clock: Callable[[], int] | None = None,
        db_session: Session | None = None,
    ) -> None:
        """Initialize executor.

        Args:
            processor: External position processor.
            clock: Returns the current unix time; defaults to wall clock.
            db_session: Optional session used to log submissions.
        """
        self.processor = processor
        self.clock = clock or (lambda: int(time.time()))
        self.db_session = db_session
        self._in_flight: set[str] = set()
        self._succeeded: set[str] = set()
        # fingerprint -> tx hash of a broadcast whose receipt was never seen
        self._pending: dict[str, str] = {}
        if db_session is not None:
            self._load_blocked()

    def preflight(
        self,
        batch: ActionBatch,
        native_value: int,
        spend_limits: Mapping[str, int] | None = None,
    ) -> None:
        """Every local check, in order. Makes no external call."""
        if len(batch) == 0:
            raise InvalidParameters("batch has no actions")
        if isinstance(native_value, bool) or not isinstance(native_value, int) or native_value < 0:
            raise InvalidParameters(f"native value must be a non-negative integer, got {native_value!r}")

        now = self.clock()
        if batch.deadline < now:
            raise DeadlineExpired(batch.deadline, now)

        require_closed(batch.actions, native_value)

        if spend_limits:
            check_spend_limits(predict_deltas(batch.actions), spend_limits)

    def execute(
        self,
        batch: ActionBatch,
        native_value: int | None = None,
        spend_limits: Mapping[str, int] | None = None,
    ) -> OperationResult:
        """Submit ``batch`` with ``native_value`` forwarded.

        Raises:
            InvalidParameters: Empty batch, bad value, spend limit exceeded, or
                a resubmission of a batch that already succeeded or is in flight.
            DeadlineExpired: ``batch.deadline`` is in the past.
            UnsettledCurrency: The batch leaves a touched currency open.
            ExternalExecutionFailed: The processor failed; nothing happened.
            OutcomeUnknown: The request was broadcast but its result is unknown;
                the batch stays blocked until ``resolve_pending`` is called.
        """
        value = batch.native_value if native_value is None else native_value
        self.preflight(batch, value, spend_limits)

        fingerprint = batch.fingerprint(value)
        if fingerprint in self._pending:
            raise InvalidParameters(
                f"batch {fingerprint[:10]} was already submitted as {self._pending[fingerprint]} "
                "with unknown outcome; resolve it before resubmitting"
            )
        if fingerprint in self._succeeded or fingerprint in self._in_flight:
            raise InvalidParameters(f"batch {fingerprint[:10]} was already submitted")

        predicted = predict_deltas(batch.actions)
        encoded = batch.encode()

        logger.info(
            f"Submitting batch {fingerprint[:10]} ({len(batch)} actions)",
            extra={
                "fingerprint": fingerprint,
                "actions": [action.kind.value for action in batch.actions],
                "deadline": batch.deadline,
                "native_value": value,
            },
        )

        self._in_flight.add(fingerprint)
        try:
            result = self.processor.execute_batch(encoded, value, batch.deadline)
        except OutcomeUnknown as exc:
            self._pending[fingerprint] = exc.tx_hash
            self._record(fingerprint, batch, value, "pending", tx_hash=exc.tx_hash, error=str(exc))
            raise
        except AtomicOperationError as exc:
            self._record(fingerprint, batch, value, "failed", error=str(exc))
            raise
        except Exception as exc:
            logger.error(f"Batch {fingerprint[:10]} failed: {exc}")
            self._record(fingerprint, batch, value, "failed", error=str(exc))
            raise ExternalExecutionFailed(f"processor rejected batch: {exc}") from exc
        finally:
            self._in_flight.discard(fingerprint)

        if not result.success:
            self._record(fingerprint, batch, value, "failed", error="processor reported failure")
            raise ExternalExecutionFailed("processor reported an unsuccessful batch")

        self._succeeded.add(fingerprint)

        discrepancies: list[str] = []
        if result.reported_deltas:
            discrepancies = reconcile_deltas(predicted, result.reported_deltas)

        result = result.model_copy(
            update={
                "fingerprint": fingerprint,
                "predicted_deltas": {asset: d.amount for asset, d in predicted.items()},
                "discrepancies": discrepancies,
            }
        )
        self._record(fingerprint, batch, value, "succeeded", tx_hash=result.tx_hash)

        logger.info(
            f"Batch {fingerprint[:10]} executed",
            extra={"fingerprint": fingerprint, "tx_hash": result.tx_hash},
        )
        return result

    @property
    def pending(self) -> dict[str, str]:
        """Fingerprints with a broadcast of unknown outcome, mapped to tx hash."""
        return dict(self._pending)

    def resolve_pending(self, fingerprint: str, landed: bool) -> None:
        """Settle a submission whose outcome was unknown.

        ``landed=True`` blocks the fingerprint for good; ``landed=False``
        (the transaction is known to be dropped or reverted) allows resubmission.
        """
        tx_hash = self._pending.pop(fingerprint, None)
        if tx_hash is None:
            raise InvalidParameters(f"batch {fingerprint[:10]} has no pending submission")
        if landed:
            self._succeeded.add(fingerprint)
        self._record_status(fingerprint, "succeeded" if landed else "failed", tx_hash)
        logger.info(
            f"Resolved pending batch {fingerprint[:10]} as {'landed' if landed else 'dropped'}",
            extra={"fingerprint": fingerprint, "tx_hash": tx_hash},
        )

    def _load_blocked(self) -> None:
        """Rebuild the resubmission guard from the submission log."""
        latest: dict[str, BatchSubmissionDB] = {}
        for row in self.db_session.query(BatchSubmissionDB).order_by(BatchSubmissionDB.id):
            latest[row.fingerprint] = row
        for fingerprint, row in latest.items():
            if row.status == "succeeded":
                self._succeeded.add(fingerprint)
            elif row.status == "pending":
                self._pending[fingerprint] = row.tx_hash or ""
        if self._pending:
            logger.warning(
                f"{len(self._pending)} batch submissions have unknown outcome",
                extra={"pending": sorted(self._pending.values())},
            )

    def _record_status(self, fingerprint: str, status: str, tx_hash: str | None) -> None:
        if self.db_session is None:
            return
        try:
            row = (
                self.db_session.query(BatchSubmissionDB)
                .filter(BatchSubmissionDB.fingerprint == fingerprint)
                .order_by(BatchSubmissionDB.id.desc())
                .first()
            )
            if row is not None:
                row.status = status
                row.tx_hash = tx_hash
                self.db_session.commit()
        except SQLAlchemyError as exc:
            self.db_session.rollback()
            logger.error(f"Failed to update batch submission {fingerprint[:10]}: {exc}")

    def _record(
        self,
        fingerprint: str,
        batch: ActionBatch,
        value: int,
        status: str,
        tx_hash: str | None = None,
        error: str | None = None,
    ) -> None:
        """Log the submission outcome. Storage problems never mask the outcome."""
        if self.db_session is None:
            return
        try:
            self.db_session.add(
                BatchSubmissionDB(
                    fingerprint=fingerprint,
                    deadline=batch.deadline,
                    native_value=str(value),
                    action_kinds=[action.kind.value for action in batch.actions],
                    status=status,
                    tx_hash=tx_hash,
                    error=error,
                    submitted_at=datetime.utcnow(),
                )
            )
            self.db_session.commit()
        except SQLAlchemyError as exc:
            self.db_session.rollback()
            logger.error(f"Failed to record batch submission {fingerprint[:10]}: {exc}")
