"""
pna swap client - Trustless BTC <-> USDC swaps over the M1 rail

The client discovers LPs, picks the best route (one LP end to end, or two
LPs joined on M1), and coordinates the 3-secret HTLC swap. The user's
secret S_user is only revealed after the LP's locks are verified.

Usage:
    from pna_swap import SwapContext, QuoteEngine, SwapCoordinator

    context = SwapContext.create()
    await context.directory.refresh()

    route = await QuoteEngine(context).best_route("BTC", "USDC", 0.01)
    coordinator = SwapCoordinator(context, listener=print)
    swap = await coordinator.start("0xYourBaseAddress")
    # send BTC to swap.deposit_address, then confirm at the gate:
    await coordinator.confirm_disclosure()
"""

from .core import (
    SwapState,
    SwapDirection,
    Quote,
    Leg,
    FullRoute,
    PerLegRoute,
    Swap,
    map_wire_state,
    generate_secret,
    verify_preimage,
    btc_to_sats,
    sats_to_btc,
    BTC_M1_RATE,
)
from .errors import (
    SwapError,
    TransportError,
    SchemaError,
    BusinessRejection,
    NoRouteError,
    CoordinationError,
    DisclosureBlocked,
    UserDeclined,
    SwapInFlight,
    ProtocolTimeout,
)
from .config import ClientConfig
from .retry import RetryPolicy, NO_RETRY

from .lp import LPClient, LPDirectory
from .realtime import RealtimeHub, RealtimeChannel
from .routing import QuoteEngine, QuoteFeed
from .swap import SwapContext, SwapCoordinator, SessionStore, Notice
from .chains import EVMLocker, validate_destination

__version__ = "0.1.0"
__all__ = [
    # Core types
    "SwapState",
    "SwapDirection",
    "Quote",
    "Leg",
    "FullRoute",
    "PerLegRoute",
    "Swap",
    "map_wire_state",
    # Utilities
    "generate_secret",
    "verify_preimage",
    "btc_to_sats",
    "sats_to_btc",
    "BTC_M1_RATE",
    # Errors
    "SwapError",
    "TransportError",
    "SchemaError",
    "BusinessRejection",
    "NoRouteError",
    "CoordinationError",
    "DisclosureBlocked",
    "UserDeclined",
    "SwapInFlight",
    "ProtocolTimeout",
    # Client
    "ClientConfig",
    "RetryPolicy",
    "NO_RETRY",
    "LPClient",
    "LPDirectory",
    "RealtimeHub",
    "RealtimeChannel",
    "QuoteEngine",
    "QuoteFeed",
    "SwapContext",
    "SwapCoordinator",
    "SessionStore",
    "Notice",
    "EVMLocker",
    "validate_destination",
]
