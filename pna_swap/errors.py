"""
Error taxonomy for the swap client.

Every error says whether user funds are already committed, so callers can
tell "nothing happened yet" apart from "funds locked, waiting for resolution".
"""

import re
from enum import Enum
from typing import Optional


NO_FUNDS_NOTE = "No funds committed yet."
FUNDS_COMMITTED_NOTE = "Funds committed. Your collateral is safe and refunds after the HTLC timelock."


class SwapError(Exception):
    """Base class for client errors."""

    def __init__(self, message: str, funds_committed: bool = False):
        super().__init__(message)
        self.message = message
        self.funds_committed = funds_committed

    @property
    def safety_note(self) -> str:
        return FUNDS_COMMITTED_NOTE if self.funds_committed else NO_FUNDS_NOTE

    def user_message(self) -> str:
        return f"{self.message} ({self.safety_note})"


class TransportError(SwapError):
    """Timeout, connection failure, 5xx or 429. Retryable."""

    def __init__(self, message: str, status_code: Optional[int] = None,
                 funds_committed: bool = False):
        super().__init__(message, funds_committed)
        self.status_code = status_code


class SchemaError(TransportError):
    """LP payload did not match the expected schema."""


class RejectionReason(Enum):
    BELOW_MINIMUM = "below_minimum"
    ABOVE_MAXIMUM = "above_maximum"
    INSUFFICIENT_INVENTORY = "insufficient_inventory"
    OTHER = "other"


_MIN_RE = re.compile(r"minimum:\s*([\d.]+)", re.IGNORECASE)
_MAX_RE = re.compile(r"maximum:\s*([\d.]+)", re.IGNORECASE)


class BusinessRejection(SwapError):
    """LP refused the request (4xx). Surfaced verbatim, never retried."""

    def __init__(self, message: str, reason: RejectionReason = RejectionReason.OTHER,
                 limit: Optional[float] = None, status_code: Optional[int] = None,
                 funds_committed: bool = False):
        super().__init__(message, funds_committed)
        self.reason = reason
        self.limit = limit
        self.status_code = status_code

    @classmethod
    def from_detail(cls, detail: str, status_code: Optional[int] = None) -> "BusinessRejection":
        """Classify an LP error message ("Amount below minimum: 0.0001 BTC", ...)."""
        m = _MIN_RE.search(detail)
        if m and "below" in detail.lower():
            return cls(detail, RejectionReason.BELOW_MINIMUM, float(m.group(1)), status_code)
        m = _MAX_RE.search(detail)
        if m and "above" in detail.lower():
            return cls(detail, RejectionReason.ABOVE_MAXIMUM, float(m.group(1)), status_code)
        lowered = detail.lower()
        if "inventory" in lowered or "liquidity" in lowered:
            return cls(detail, RejectionReason.INSUFFICIENT_INVENTORY, None, status_code)
        return cls(detail, RejectionReason.OTHER, None, status_code)


class NoRouteError(BusinessRejection):
    """No LP can fill the requested swap."""


class CoordinationError(SwapError):
    """A relay step was rejected by an LP. Fatal to the swap."""

    def __init__(self, message: str, step: str, funds_committed: bool = True):
        super().__init__(message, funds_committed)
        self.step = step


class DisclosureBlocked(SwapError):
    """Verification found a mismatch; S_user stays private until overridden."""

    def __init__(self, message: str, warnings=None):
        super().__init__(message, funds_committed=True)
        self.warnings = list(warnings or [])


class ProtocolTimeout(SwapError):
    """Plan or timelock expired."""


class UserDeclined(SwapError):
    """Wallet refused to sign. The swap is left as it was."""


class SwapInFlight(SwapError):
    """Another swap is already active in this context."""
