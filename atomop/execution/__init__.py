"""Action batches, settlement accounting and batch execution."""

from atomop.execution.accountant import (
    CurrencyDelta,
    check_spend_limits,
    predict_deltas,
    reconcile_deltas,
    require_closed,
    unsettled_currencies,
    validate_closed,
)
from atomop.execution.actions import Action, ActionKind, build_action
from atomop.execution.batch import ActionBatch
from atomop.execution.executor import BatchExecutor
from atomop.execution.planner import BatchPlanner

__all__ = [
    "Action",
    "ActionBatch",
    "ActionKind",
    "BatchExecutor",
    "BatchPlanner",
    "CurrencyDelta",
    "build_action",
    "check_spend_limits",
    "predict_deltas",
    "reconcile_deltas",
    "require_closed",
    "unsettled_currencies",
    "validate_closed",
]
