"""
Core types for the pna swap client.

Routes, quotes and swap records shared by the quote engine, the coordinator
and the per-leg relay. LP wire states are folded into one client lattice here.
"""

import hashlib
import secrets
import time
from enum import Enum
from dataclasses import dataclass, field, asdict
from typing import Optional, Dict, Any, List, Union


# =============================================================================
# Constants
# =============================================================================

# Settlement rail: 1 SAT = 1 M1
RAIL_ASSET = "M1"
BTC_M1_RATE = 100_000_000  # M1 per BTC

# Same-LP bias: keep both legs on one LP when within 0.1% of the best leg2
SAME_LP_TOLERANCE = 0.001

# Verification gate: locked amount may deviate at most 1% from the quote
LOCK_AMOUNT_TOLERANCE = 0.01

# Session lifetime, aligned to the M1 HTLC timelock (120 blocks * 60s)
SESSION_EXPIRY_SECONDS = 7200


# =============================================================================
# States
# =============================================================================

class SwapDirection(Enum):
    """Swap direction relative to the source chain."""
    FORWARD = "forward"   # BTC -> USDC (user deposits BTC)
    REVERSE = "reverse"   # USDC -> BTC (user locks USDC on EVM)


class SwapState(Enum):
    """Client view of a swap.

    AWAITING_DEPOSIT → DEPOSIT_DETECTED → [RAIL_LOCKED] → COUNTERPARTY_LOCKED
      → PRIMARY_CLAIMED → COMPLETING → COMPLETED

    RAIL_LOCKED only appears on per-leg routes.
    """
    AWAITING_DEPOSIT = "awaiting_deposit"        # Plan only, nothing on-chain
    DEPOSIT_DETECTED = "deposit_detected"        # User deposit seen, stability window
    RAIL_LOCKED = "rail_locked"                  # LP_IN locked M1 (per-leg)
    COUNTERPARTY_LOCKED = "counterparty_locked"  # LP HTLCs on-chain, S_user may go out
    PRIMARY_CLAIMED = "primary_claimed"          # Primary LP claimed the user's deposit
    COMPLETING = "completing"                    # Remaining claims in progress
    COMPLETED = "completed"                      # Destination funds settled
    FAILED = "failed"
    EXPIRED = "expired"                          # Plan expired before any LP lock
    REFUNDED = "refunded"                        # Timelock refund

    @property
    def rank(self) -> int:
        return STATE_RANK[self]

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES

    @property
    def is_pre_lock(self) -> bool:
        return self in PRE_LOCK_STATES


STATE_RANK = {
    SwapState.AWAITING_DEPOSIT: 0,
    SwapState.DEPOSIT_DETECTED: 1,
    SwapState.RAIL_LOCKED: 2,
    SwapState.COUNTERPARTY_LOCKED: 3,
    SwapState.PRIMARY_CLAIMED: 4,
    SwapState.COMPLETING: 5,
    SwapState.COMPLETED: 6,
    SwapState.FAILED: 7,
    SwapState.EXPIRED: 7,
    SwapState.REFUNDED: 7,
}

TERMINAL_STATES = frozenset({
    SwapState.COMPLETED,
    SwapState.FAILED,
    SwapState.EXPIRED,
    SwapState.REFUNDED,
})

PRE_LOCK_STATES = frozenset({
    SwapState.AWAITING_DEPOSIT,
    SwapState.DEPOSIT_DETECTED,
})

# LP wire state -> client state
WIRE_STATES = {
    # Forward
    "awaiting_btc": SwapState.AWAITING_DEPOSIT,
    "btc_funded": SwapState.DEPOSIT_DETECTED,
    "btc_claimed": SwapState.PRIMARY_CLAIMED,
    # Reverse
    "awaiting_usdc": SwapState.AWAITING_DEPOSIT,
    "usdc_funded": SwapState.DEPOSIT_DETECTED,
    # Per-leg
    "awaiting_m1": SwapState.AWAITING_DEPOSIT,
    "m1_locked": SwapState.RAIL_LOCKED,
    # Common
    "lp_locked": SwapState.COUNTERPARTY_LOCKED,
    "completing": SwapState.COMPLETING,
    "completed": SwapState.COMPLETED,
    "failed": SwapState.FAILED,
    "expired": SwapState.EXPIRED,
    "refunded": SwapState.REFUNDED,
}


def map_wire_state(wire_state: str) -> Optional[SwapState]:
    """Map an LP wire state onto the client lattice (None if unknown)."""
    if not wire_state:
        return None
    return WIRE_STATES.get(wire_state.lower())


# =============================================================================
# Quotes and routes
# =============================================================================

@dataclass(frozen=True)
class Quote:
    """Direct quote from one LP (BTC <-> USDC through M1)."""
    lp_id: str
    lp_name: str
    endpoint: str
    from_asset: str
    to_asset: str
    from_amount: float
    to_amount: float
    rate: float
    spread_percent: float
    route: str
    settlement_time_seconds: int = 0
    settlement_time_human: str = ""
    confirmations_breakdown: Dict[str, int] = field(default_factory=dict)
    inventory_ok: Optional[bool] = True
    min_amount: float = 0.0
    max_amount: float = 0.0
    valid_until: int = 0

    @property
    def fillable(self) -> bool:
        # Missing inventory flag counts as fillable
        return self.inventory_ok is not False


@dataclass(frozen=True)
class Leg:
    """One-sided quote: asset -> M1 or M1 -> asset."""
    leg: str                # e.g. "BTC/M1"
    lp_id: str
    lp_name: str
    endpoint: str
    from_asset: str
    to_asset: str
    from_amount: float
    to_amount: float
    rate: float
    spread_percent: float
    settlement_time_seconds: int = 0
    inventory_ok: Optional[bool] = True
    min_amount: float = 0.0
    max_amount: float = 0.0

    @property
    def fillable(self) -> bool:
        return self.inventory_ok is not False


@dataclass(frozen=True)
class FullRoute:
    """One LP runs the whole swap."""
    quote: Quote

    kind = "full"

    @property
    def from_asset(self) -> str:
        return self.quote.from_asset

    @property
    def to_asset(self) -> str:
        return self.quote.to_asset

    @property
    def from_amount(self) -> float:
        return self.quote.from_amount

    @property
    def to_amount(self) -> float:
        return self.quote.to_amount

    @property
    def endpoints(self) -> List[str]:
        return [self.quote.endpoint]

    @property
    def description(self) -> str:
        return f"{self.quote.route} via {self.quote.lp_name}"


@dataclass(frozen=True)
class PerLegRoute:
    """Split route: leg1 (asset -> M1) and leg2 (M1 -> asset), possibly on two LPs."""
    leg1: Leg
    leg2: Leg

    kind = "perleg"

    @property
    def from_asset(self) -> str:
        return self.leg1.from_asset

    @property
    def to_asset(self) -> str:
        return self.leg2.to_asset

    @property
    def from_amount(self) -> float:
        return self.leg1.from_amount

    @property
    def to_amount(self) -> float:
        return self.leg2.to_amount

    @property
    def total_spread(self) -> float:
        return self.leg1.spread_percent + self.leg2.spread_percent

    @property
    def settlement_time_seconds(self) -> int:
        return self.leg1.settlement_time_seconds + self.leg2.settlement_time_seconds

    @property
    def same_lp(self) -> bool:
        return self.leg1.endpoint == self.leg2.endpoint

    @property
    def endpoints(self) -> List[str]:
        if self.same_lp:
            return [self.leg1.endpoint]
        return [self.leg1.endpoint, self.leg2.endpoint]

    @property
    def description(self) -> str:
        return (f"{self.leg1.from_asset} -> {RAIL_ASSET} ({self.leg1.lp_name}) -> "
                f"{self.leg2.to_asset} ({self.leg2.lp_name})")


Route = Union[FullRoute, PerLegRoute]


# =============================================================================
# Swap record
# =============================================================================

@dataclass
class Swap:
    """Active swap tracked by the coordinator.

    S_user lives here in memory only; to_dict() leaves it out so that the
    session store is the single place it is persisted.
    """
    swap_id: str
    direction: SwapDirection
    from_asset: str
    to_asset: str
    from_amount: float
    to_amount: float
    dest_address: str
    lp_endpoint: str
    lp_name: str = ""
    state: SwapState = SwapState.AWAITING_DEPOSIT

    # Hashlocks
    H_user: str = ""
    H_lp1: str = ""
    H_lp2: str = ""

    # Plan expiry (unix seconds, 0 = unknown)
    expires_at: int = 0

    # Forward deposit
    deposit_address: Optional[str] = None
    deposit_amount_sats: int = 0
    # Reverse USDC lock parameters (contract, token, recipient, amount, timelock_seconds)
    usdc_lock: Optional[Dict[str, Any]] = None
    user_htlc_id: Optional[str] = None

    # Counterparty lock reference
    evm_htlc_id: Optional[str] = None
    evm_lock_txhash: Optional[str] = None

    # Per-leg routing
    is_perleg: bool = False
    swap_id_out: Optional[str] = None
    lp_out_endpoint: Optional[str] = None
    lp_out_name: str = ""
    S_lp2: Optional[str] = None
    rail_locked_notified: bool = False
    secret_delivered: bool = False
    primary_claim_notified: bool = False

    primary_claim_txid: Optional[str] = None
    error: Optional[str] = None
    created_at: int = field(default_factory=lambda: int(time.time()))
    updated_at: int = field(default_factory=lambda: int(time.time()))

    S_user: Optional[str] = field(default=None, repr=False)

    @property
    def in_flight(self) -> bool:
        return not self.state.is_terminal

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data.pop("S_user")
        data["direction"] = self.direction.value
        data["state"] = self.state.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Swap":
        data = dict(data)
        data.pop("S_user", None)
        data["direction"] = SwapDirection(data["direction"])
        data["state"] = SwapState(data.get("state", SwapState.AWAITING_DEPOSIT.value))
        known = set(cls.__dataclass_fields__)
        return cls(**{k: v for k, v in data.items() if k in known})


# =============================================================================
# Crypto Utilities
# =============================================================================

def generate_secret() -> tuple[str, str]:
    """
    Generate a random secret and its SHA256 hashlock.

    Returns:
        (secret_hex, hashlock_hex)
    """
    secret = secrets.token_bytes(32)
    hashlock = hashlib.sha256(secret).digest()
    return secret.hex(), hashlock.hex()


def verify_preimage(preimage_hex: str, hashlock_hex: str) -> bool:
    """
    Verify that SHA256(preimage) == hashlock.

    Accepts optional 0x prefixes on either side.
    """
    try:
        preimage = bytes.fromhex(_strip_0x(preimage_hex))
        expected = bytes.fromhex(_strip_0x(hashlock_hex))
        return hashlib.sha256(preimage).digest() == expected
    except (ValueError, TypeError):
        return False


def _strip_0x(value: str) -> str:
    return value[2:] if value.startswith("0x") else value


def sats_to_btc(sats: int) -> float:
    """Convert satoshis to BTC."""
    return sats / BTC_M1_RATE


def btc_to_sats(btc: float) -> int:
    """Convert BTC to satoshis."""
    return int(round(btc * BTC_M1_RATE))
