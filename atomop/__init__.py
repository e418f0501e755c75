"""atomop - atomic untrusted-callback operation engine.

Client-side protocol for driving external DeFi infrastructure safely:
ordered action batches, flash-loan callbacks behind an authorization guard,
and a notification-driven position ledger.
"""

__version__ = "0.1.0"
