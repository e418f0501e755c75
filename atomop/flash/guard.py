"""Callback authorization guard.

The two checks here are the whole trust boundary: the call must come from
the single trusted counter-party, and it must belong to an operation this
process started. Both run before any decoding, state change, or external
call.
"""

from __future__ import annotations

import logging

from atomop.errors import ForeignInitiator, UnauthorizedCaller
from atomop.utils.addresses import normalize_address, same_address
from atomop.utils.logging import SECURITY_SIGNAL

logger = logging.getLogger(__name__)


class CallbackAuthorizationGuard:
    """Checks the source and the initiator of inbound callbacks."""

    def __init__(self, trusted_authority: str, self_address: str | None = None, name: str = "guard"):
        self.trusted_authority = normalize_address(trusted_authority, "trusted authority")
        self.self_address = (
            normalize_address(self_address, "self address") if self_address is not None else None
        )
        self.name = name

    def require_trusted(self, caller: str) -> None:
        """Raise ``UnauthorizedCaller`` unless ``caller`` is the trusted authority."""
        if not same_address(caller, self.trusted_authority):
            logger.warning(
                f"{self.name}: rejected call from untrusted caller {caller}",
                extra={
                    "signal": SECURITY_SIGNAL,
                    "reason": "unauthorized_caller",
                    "caller": str(caller),
                    "expected": self.trusted_authority,
                },
            )
            raise UnauthorizedCaller(str(caller), self.trusted_authority)

    def require_initiator(self, initiator: str) -> None:
        """Raise ``ForeignInitiator`` unless this process started the operation."""
        if self.self_address is None or not same_address(initiator, self.self_address):
            logger.warning(
                f"{self.name}: rejected callback for foreign initiator {initiator}",
                extra={
                    "signal": SECURITY_SIGNAL,
                    "reason": "foreign_initiator",
                    "initiator": str(initiator),
                    "expected": self.self_address,
                },
            )
            raise ForeignInitiator(str(initiator), str(self.self_address))

    def authorize(self, authority: str, initiator: str) -> None:
        """Authority first, regardless of any other field."""
        self.require_trusted(authority)
        self.require_initiator(initiator)
