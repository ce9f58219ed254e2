"""
Swap coordination: session store, commit gate, per-leg relay, coordinator.
"""

from .session import Session, SessionStore
from .verify import LockVerification, verify_counterparty_lock
from .context import SwapContext
from .relay import PerLegRelay
from .coordinator import SwapCoordinator, Notice

__all__ = [
    "Session",
    "SessionStore",
    "LockVerification",
    "verify_counterparty_lock",
    "SwapContext",
    "PerLegRelay",
    "SwapCoordinator",
    "Notice",
]
