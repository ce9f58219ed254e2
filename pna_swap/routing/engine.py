"""
Route selection.

Two ways to fill BTC <-> USDC:

- Direct: one LP quotes the whole swap (FullRoute).
- Per-leg: best LP for asset -> M1, then best LP for M1 -> asset using the
  leg1 output as input (PerLegRoute). The legs may be on different LPs.

Per-leg wins only if its output is strictly greater; ties go to direct.
Quotes with inventory_ok == False never win but still inform the error
reported when nothing is fillable.

QuoteFeed keeps a route fresh for `pna-swap quote --watch`: it re-quotes
every quote_refresh seconds and whenever a subscribed LP pushes a quote.
"""

import asyncio
import logging
from typing import Optional, List, Tuple, Sequence, Union

from ..core import Quote, Leg, FullRoute, PerLegRoute, Route, SAME_LP_TOLERANCE
from ..errors import BusinessRejection, NoRouteError, RejectionReason, TransportError
from ..realtime.events import EventHandler, QuoteEvent
from ..swap.context import SwapContext

log = logging.getLogger(__name__)

Offer = Union[Quote, Leg]


def select_best(offers: Sequence[Offer]) -> Optional[Offer]:
    """Fillable offer with the largest output. First LP wins ties."""
    fillable = [o for o in offers if o.fillable]
    if not fillable:
        return None
    return max(fillable, key=lambda o: o.to_amount)


def apply_same_lp_bias(leg1: Leg, best_leg2: Leg, leg2_offers: Sequence[Leg]) -> Leg:
    """Keep both legs on leg1's LP when its leg2 is within 0.1% of the best."""
    if best_leg2.endpoint == leg1.endpoint:
        return best_leg2
    for offer in leg2_offers:
        if offer.endpoint != leg1.endpoint or not offer.fillable:
            continue
        if best_leg2.to_amount - offer.to_amount <= best_leg2.to_amount * SAME_LP_TOLERANCE:
            log.debug(f"Same-LP bias: {offer.lp_name} {offer.to_amount} vs "
                      f"{best_leg2.lp_name} {best_leg2.to_amount}")
            return offer
    return best_leg2


def pick_route(direct: Optional[Quote], perleg: Optional[PerLegRoute]) -> Optional[Route]:
    if direct is None and perleg is None:
        return None
    if direct is None:
        return perleg
    if perleg is not None and perleg.to_amount > direct.to_amount:
        return perleg
    return FullRoute(direct)


def rejection_for(offers: Sequence[Offer], errors: Sequence[BaseException],
                  from_asset: str, to_asset: str) -> NoRouteError:
    """Clearest reason no route could be built."""
    if offers and not any(o.fillable for o in offers):
        best_max = max((o.max_amount for o in offers), default=0.0)
        return NoRouteError(
            f"Insufficient LP inventory for {from_asset} -> {to_asset}"
            + (f" (max {best_max} {from_asset})" if best_max else ""),
            reason=RejectionReason.INSUFFICIENT_INVENTORY,
            limit=best_max or None,
        )
    for e in errors:
        if isinstance(e, BusinessRejection):
            return NoRouteError(e.message, reason=e.reason, limit=e.limit,
                                status_code=e.status_code)
    return NoRouteError(f"No LP available for {from_asset} -> {to_asset}")


def _split(results) -> Tuple[list, List[BaseException]]:
    offers, errors = [], []
    for r in results:
        if isinstance(r, BaseException):
            errors.append(r)
        else:
            offers.append(r)
    return offers, errors


class QuoteEngine:
    """Parallel quote fan-out across the context's LP set."""

    def __init__(self, context: SwapContext):
        self.context = context
        self.last_offers: List[Offer] = []

    @property
    def rail(self) -> str:
        return self.context.config.rail_asset

    async def _gather(self, coros):
        results = await asyncio.gather(*coros, return_exceptions=True)
        for r in results:
            if isinstance(r, TransportError):
                log.debug(f"Quote failed: {r}")
            elif isinstance(r, BaseException) and not isinstance(r, BusinessRejection):
                log.warning(f"Quote failed unexpectedly: {r!r}")
        return _split(results)

    async def direct_quotes(self, from_asset: str, to_asset: str,
                            amount: float) -> Tuple[List[Quote], List[BaseException]]:
        clients = self.context.directory.clients()
        return await self._gather(c.quote(from_asset, to_asset, amount) for c in clients)

    async def leg_quotes(self, from_asset: str, to_asset: str,
                         amount: float) -> Tuple[List[Leg], List[BaseException]]:
        clients = self.context.directory.clients()
        return await self._gather(c.quote_leg(from_asset, to_asset, amount) for c in clients)

    async def per_leg_route(self, from_asset: str, to_asset: str,
                            amount: float) -> Tuple[Optional[PerLegRoute], list, list]:
        """Best leg1 feeds leg2 selection. Returns (route, offers, errors)."""
        leg1_offers, errors = await self.leg_quotes(from_asset, self.rail, amount)
        leg1 = select_best(leg1_offers)
        if leg1 is None:
            return None, leg1_offers, errors

        leg2_offers, leg2_errors = await self.leg_quotes(self.rail, to_asset, leg1.to_amount)
        best_leg2 = select_best(leg2_offers)
        if best_leg2 is None:
            return None, leg1_offers + leg2_offers, errors + leg2_errors

        leg2 = apply_same_lp_bias(leg1, best_leg2, leg2_offers)
        return PerLegRoute(leg1, leg2), leg1_offers + leg2_offers, errors + leg2_errors

    async def best_route(self, from_asset: str, to_asset: str,
                         amount: float) -> Optional[Route]:
        """Best route for `amount` of from_asset, or None for a zero amount.

        Raises NoRouteError below the configured minimum (no LP is asked)
        and when LPs answered but none can fill the swap.
        """
        if amount is None or amount <= 0:
            return None
        floor = self.context.config.min_amount
        if amount < floor:
            raise NoRouteError(f"Amount below minimum: {floor} {from_asset}",
                               RejectionReason.BELOW_MINIMUM, limit=floor)

        use_legs = self.rail not in (from_asset, to_asset)
        if use_legs:
            (quotes, errors), (perleg, leg_offers, leg_errors) = await asyncio.gather(
                self.direct_quotes(from_asset, to_asset, amount),
                self.per_leg_route(from_asset, to_asset, amount),
            )
        else:
            quotes, errors = await self.direct_quotes(from_asset, to_asset, amount)
            perleg, leg_offers, leg_errors = None, [], []

        self.last_offers = list(quotes) + list(leg_offers)
        route = pick_route(select_best(quotes), perleg)
        if route is None:
            self.context.bind_route(None)
            # Direct failures carry the clearest reason (same amount units)
            if quotes or errors:
                raise rejection_for(quotes, errors, from_asset, to_asset)
            raise rejection_for(leg_offers, leg_errors, from_asset, to_asset)

        log.info(f"Best route {from_asset}->{to_asset} {amount}: "
                 f"{route.description} = {route.to_amount} {to_asset}")
        self.context.bind_route(route)
        return route

    async def estimate_output(self, from_asset: str, to_asset: str, amount: float) -> float:
        """Output of the best route, 0 when no route."""
        if amount is None or amount <= 0:
            return 0.0
        try:
            route = await self.best_route(from_asset, to_asset, amount)
        except NoRouteError:
            return 0.0
        return route.to_amount if route else 0.0


class QuoteFeed(EventHandler):
    """Best route for a fixed request, refreshed on a timer and on pushed quotes."""

    def __init__(self, engine: QuoteEngine, hub=None, interval: float = 10.0):
        self.engine = engine
        self.hub = hub
        self.interval = interval
        self._pushed = asyncio.Event()

    async def on_quote(self, event: QuoteEvent) -> None:
        log.debug(f"[ws] Quote pushed by {event.source}")
        self._pushed.set()

    async def _next(self) -> None:
        try:
            await asyncio.wait_for(self._pushed.wait(), timeout=self.interval)
        except asyncio.TimeoutError:
            pass
        self._pushed.clear()

    async def routes(self, from_asset: str, to_asset: str, amount: float):
        """Yield the best route now, then again after each refresh."""
        if self.hub is not None:
            self.hub.add_listener(self)
        subscribed = set()
        try:
            while True:
                route = await self.engine.best_route(from_asset, to_asset, amount)
                if route is None:
                    return
                if self.hub is not None:
                    for endpoint in route.endpoints:
                        if endpoint not in subscribed and self.hub.is_connected(endpoint):
                            await self.hub.subscribe_quotes(endpoint, from_asset, to_asset, amount)
                            subscribed.add(endpoint)
                yield route
                await self._next()
        finally:
            if self.hub is not None:
                self.hub.remove_listener(self)
