"""Flash operations - callback authorization and orchestration."""

from atomop.flash.context import FlashContext
from atomop.flash.guard import CallbackAuthorizationGuard
from atomop.flash.orchestrator import (
    CallbackRequest,
    FlashOrchestrator,
    FlashSettlement,
    FlashState,
)

__all__ = [
    "CallbackAuthorizationGuard",
    "CallbackRequest",
    "FlashContext",
    "FlashOrchestrator",
    "FlashSettlement",
    "FlashState",
]
