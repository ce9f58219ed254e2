#!/usr/bin/env python3
"""
Route selection: direct vs per-leg, inventory filtering, same-LP bias.

Usage:
    python -m pytest tests/test_routing.py
"""

import asyncio
import os
import sys
import unittest
from unittest.mock import MagicMock, AsyncMock

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from pna_swap.core import FullRoute, PerLegRoute, Leg, Quote
from pna_swap.errors import NoRouteError, RejectionReason
from pna_swap.realtime.events import QuoteEvent
from pna_swap.routing.engine import (
    QuoteEngine, QuoteFeed, select_best, apply_same_lp_bias, pick_route,
)

from fakes import FakeLP, make_context, error


def _leg(endpoint, to_amount, inventory_ok=True):
    return Leg(leg="M1/USDC", lp_id=endpoint, lp_name=endpoint, endpoint=endpoint,
               from_asset="M1", to_asset="USDC", from_amount=1000.0, to_amount=to_amount,
               rate=to_amount / 1000.0, spread_percent=0.2, inventory_ok=inventory_ok)


class TestSelection(unittest.TestCase):

    def test_first_lp_wins_ties(self):
        a, b = _leg("a", 500.0), _leg("b", 500.0)
        self.assertIs(select_best([a, b]), a)

    def test_missing_inventory_flag_is_fillable(self):
        a = _leg("a", 500.0, inventory_ok=None)
        self.assertIs(select_best([a]), a)

    def test_nothing_fillable(self):
        self.assertIsNone(select_best([_leg("a", 500.0, inventory_ok=False)]))
        self.assertIsNone(select_best([]))

    def test_same_lp_bias_within_tolerance(self):
        """LP_A's 499.6 is within 0.1% of LP_B's 500, keep both legs on LP_A."""
        leg1 = _leg("a", 1000.0)
        offers = [_leg("b", 500.0), _leg("a", 499.6)]
        self.assertEqual(apply_same_lp_bias(leg1, offers[0], offers).endpoint, "a")

    def test_same_lp_bias_outside_tolerance(self):
        leg1 = _leg("a", 1000.0)
        offers = [_leg("b", 500.0), _leg("a", 499.4)]
        self.assertEqual(apply_same_lp_bias(leg1, offers[0], offers).endpoint, "b")

    def test_per_leg_needs_strictly_more(self):
        q = Quote(lp_id="a", lp_name="A", endpoint="a", from_asset="BTC", to_asset="USDC",
                  from_amount=0.01, to_amount=500.0, rate=50000.0, spread_percent=0.5,
                  route="BTC->M1->USDC")
        tie = PerLegRoute(_leg("a", 1000.0), _leg("b", 500.0))
        better = PerLegRoute(_leg("a", 1000.0), _leg("b", 500.01))
        self.assertIsInstance(pick_route(q, tie), FullRoute)
        self.assertIs(pick_route(q, better), better)
        self.assertIs(pick_route(None, tie), tie)
        self.assertIsNone(pick_route(None, None))


class TestQuoteEngine(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        self.a = FakeLP("LPA")
        self.b = FakeLP("LPB")
        self.context = make_context(self.a, self.b)
        self.engine = QuoteEngine(self.context)

    async def asyncTearDown(self):
        await self.context.directory.http.aclose()

    async def test_zero_amount_makes_no_calls(self):
        self.assertIsNone(await self.engine.best_route("BTC", "USDC", 0))
        self.assertIsNone(await self.engine.best_route("BTC", "USDC", -1))
        self.assertEqual(sum(self.a.hits.values()) + sum(self.b.hits.values()), 0)
        self.assertEqual(await self.engine.estimate_output("BTC", "USDC", 0), 0.0)

    async def test_non_fillable_quote_never_wins(self):
        """LP_B quotes more but has no inventory; LP_A wins."""
        self.a.on("GET", "/api/quote", lambda r: self.a.quote("BTC", "USDC", 0.01, 950.0))
        self.b.on("GET", "/api/quote",
                  lambda r: self.b.quote("BTC", "USDC", 0.01, 960.0, inventory_ok=False))
        route = await self.engine.best_route("BTC", "USDC", 0.01)
        self.assertIsInstance(route, FullRoute)
        self.assertEqual(route.quote.endpoint, self.a.endpoint)
        self.assertEqual(route.to_amount, 950.0)
        self.assertIs(self.context.active_route, route)

    async def test_per_leg_same_lp_bias(self):
        self.a.legs({("BTC", "M1"): 1000.0, ("M1", "USDC"): 499.6})
        self.b.legs({("BTC", "M1"): 990.0, ("M1", "USDC"): 500.0})
        route = await self.engine.best_route("BTC", "USDC", 0.01)
        self.assertIsInstance(route, PerLegRoute)
        self.assertTrue(route.same_lp)
        self.assertEqual(route.leg2.endpoint, self.a.endpoint)
        self.assertEqual(route.to_amount, 499.6)
        self.assertEqual(route.endpoints, [self.a.endpoint])

    async def test_leg2_quoted_on_leg1_output(self):
        amounts = []

        def respond(request):
            p = request.url.params
            if p["from"] == "BTC":
                return self.a.leg("BTC", "M1", float(p["amount"]), 1000.0)
            amounts.append(float(p["amount"]))
            return self.a.leg("M1", "USDC", float(p["amount"]), 500.0)

        self.a.on("GET", "/api/quote/leg", respond)
        route = await self.engine.best_route("BTC", "USDC", 0.01)
        self.assertIsInstance(route, PerLegRoute)
        self.assertEqual(amounts, [1000.0])

    async def test_split_route_across_lps(self):
        self.a.legs({("BTC", "M1"): 1000.0, ("M1", "USDC"): 490.0})
        self.b.legs({("BTC", "M1"): 990.0, ("M1", "USDC"): 500.0})
        route = await self.engine.best_route("BTC", "USDC", 0.01)
        self.assertFalse(route.same_lp)
        self.assertEqual(route.leg1.endpoint, self.a.endpoint)
        self.assertEqual(route.leg2.endpoint, self.b.endpoint)

    async def test_direct_wins_tie_with_per_leg(self):
        self.a.on("GET", "/api/quote", lambda r: self.a.quote("BTC", "USDC", 0.01, 500.0))
        self.a.legs({("BTC", "M1"): 1000.0, ("M1", "USDC"): 500.0})
        route = await self.engine.best_route("BTC", "USDC", 0.01)
        self.assertIsInstance(route, FullRoute)

    async def test_rail_pair_skips_legs(self):
        self.a.on("GET", "/api/quote", lambda r: self.a.quote("BTC", "M1", 0.01, 1000.0))
        route = await self.engine.best_route("BTC", "M1", 0.01)
        self.assertIsInstance(route, FullRoute)
        self.assertEqual(self.a.hit("GET", "/api/quote/leg"), 0)

    async def test_no_inventory_anywhere(self):
        self.a.on("GET", "/api/quote",
                  lambda r: self.a.quote("BTC", "USDC", 0.01, 950.0, inventory_ok=False))
        with self.assertRaises(NoRouteError) as ctx:
            await self.engine.best_route("BTC", "USDC", 0.01)
        self.assertEqual(ctx.exception.reason, RejectionReason.INSUFFICIENT_INVENTORY)
        self.assertIsNone(self.context.active_route)

    async def test_lp_rejection_surfaces(self):
        self.a.on("GET", "/api/quote", error(400, "Amount below minimum: 0.005 BTC"))
        with self.assertRaises(NoRouteError) as ctx:
            await self.engine.best_route("BTC", "USDC", 0.001)
        self.assertEqual(ctx.exception.reason, RejectionReason.BELOW_MINIMUM)
        self.assertEqual(ctx.exception.limit, 0.005)

    async def test_below_client_minimum_makes_no_calls(self):
        with self.assertRaises(NoRouteError) as ctx:
            await self.engine.best_route("BTC", "USDC", 0.00005)
        self.assertEqual(ctx.exception.reason, RejectionReason.BELOW_MINIMUM)
        self.assertEqual(ctx.exception.limit, self.context.config.min_amount)
        self.assertEqual(sum(self.a.hits.values()) + sum(self.b.hits.values()), 0)
        self.assertEqual(await self.engine.estimate_output("BTC", "USDC", 0.00005), 0.0)

    async def test_unreachable_lp_ignored(self):
        """One LP failing does not hide the other's quote."""
        self.b.on("GET", "/api/quote", error(503, "down"))
        self.a.on("GET", "/api/quote", lambda r: self.a.quote("BTC", "USDC", 0.01, 950.0))
        route = await self.engine.best_route("BTC", "USDC", 0.01)
        self.assertEqual(route.quote.endpoint, self.a.endpoint)

    async def test_route_kept_while_swap_in_flight(self):
        self.a.on("GET", "/api/quote", lambda r: self.a.quote("BTC", "USDC", 0.01, 950.0))
        first = await self.engine.best_route("BTC", "USDC", 0.01)
        self.context.swap = MagicMock(in_flight=True)
        await self.engine.best_route("BTC", "USDC", 0.01)
        self.assertIs(self.context.active_route, first)


class TestQuoteFeed(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        self.a = FakeLP("LPA")
        self.outputs = iter([950.0, 951.0, 952.0])
        self.a.on("GET", "/api/quote",
                  lambda r: self.a.quote("BTC", "USDC", 0.01, next(self.outputs)))
        self.context = make_context(self.a)
        self.engine = QuoteEngine(self.context)
        self.hub = MagicMock()
        self.hub.is_connected.return_value = True
        self.hub.subscribe_quotes = AsyncMock()

    async def asyncTearDown(self):
        await self.context.directory.http.aclose()

    async def test_pushed_quote_triggers_requote(self):
        feed = QuoteFeed(self.engine, hub=self.hub, interval=60.0)
        routes = feed.routes("BTC", "USDC", 0.01)
        first = await routes.__anext__()
        self.assertEqual(first.to_amount, 950.0)
        self.hub.add_listener.assert_called_once_with(feed)
        self.hub.subscribe_quotes.assert_awaited_once_with(self.a.endpoint, "BTC", "USDC", 0.01)

        pending = asyncio.ensure_future(routes.__anext__())
        await asyncio.sleep(0)
        self.assertFalse(pending.done())
        await feed.dispatch(QuoteEvent(self.a.endpoint, quote={"to_amount": 951.0}))
        second = await asyncio.wait_for(pending, timeout=1.0)
        self.assertEqual(second.to_amount, 951.0)
        self.assertEqual(self.hub.subscribe_quotes.await_count, 1)

        await routes.aclose()
        self.hub.remove_listener.assert_called_once_with(feed)

    async def test_timer_requotes_without_push(self):
        feed = QuoteFeed(self.engine, interval=0.01)
        seen = []
        async for route in feed.routes("BTC", "USDC", 0.01):
            seen.append(route.to_amount)
            if len(seen) == 3:
                break
        self.assertEqual(seen, [950.0, 951.0, 952.0])
        self.assertEqual(self.a.hit("GET", "/api/quote"), 3)

    async def test_zero_amount_yields_nothing(self):
        feed = QuoteFeed(self.engine, hub=self.hub)
        self.assertEqual([r async for r in feed.routes("BTC", "USDC", 0)], [])
        self.hub.subscribe_quotes.assert_not_awaited()


if __name__ == "__main__":
    unittest.main(verbosity=2)
