#!/usr/bin/env python3
"""
LP discovery: registry tiers, fallback to configured LPs, aggregate queries.

Usage:
    python -m pytest tests/test_registry.py
"""

import os
import sys
import unittest

import httpx

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from pna_swap.lp.registry import select_endpoints
from pna_swap.realtime.events import parse_event
from pna_swap.schemas.v1 import RegistryEntry

from fakes import FakeLP, make_context, error


def _entry(endpoint, tier, status="online"):
    return RegistryEntry(endpoint=endpoint, tier=tier, status=status)


class TestSelectEndpoints(unittest.TestCase):

    def test_operator_tier_only_by_default(self):
        entries = [_entry("http://a", 1), _entry("http://b", 2), _entry("http://c", 1, "offline")]
        self.assertEqual(select_endpoints(entries), ["http://a"])

    def test_show_all(self):
        entries = [_entry("http://a", 1), _entry("http://b", 2), _entry("http://c", 2, "offline")]
        self.assertEqual(select_endpoints(entries, show_all=True), ["http://a", "http://b"])

    def test_falls_back_to_every_registered_lp(self):
        """Filter leaving nothing uses all registered LPs."""
        entries = [_entry("http://b", 2), _entry("http://c", 1, "offline")]
        self.assertEqual(select_endpoints(entries), ["http://b", "http://c"])


class TestDirectory(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        self.a = FakeLP("LPA")
        self.b = FakeLP("LPB")
        self.registry_up = True

        def registry(request):
            if not self.registry_up:
                raise httpx.ConnectError("registry down")
            return httpx.Response(200, json={"lps": [
                {"endpoint": self.a.endpoint + "/", "tier": 1, "status": "online"},
                {"endpoint": self.b.endpoint, "tier": 2, "status": "online"},
            ]})

        self.context = make_context(self.a, self.b, registry=registry)
        self.directory = self.context.directory

    async def asyncTearDown(self):
        await self.directory.http.aclose()

    async def test_refresh_from_registry(self):
        changes = []
        self.directory.on_change(changes.append)
        endpoints = await self.directory.refresh()
        self.assertEqual(endpoints, [self.a.endpoint])
        self.assertEqual(self.directory.tier(self.a.endpoint), 1)
        self.assertEqual(self.directory.tier(self.b.endpoint), 2)
        self.assertEqual(changes, [[self.a.endpoint]])

    async def test_registry_unreachable_uses_configured_lps(self):
        self.registry_up = False
        endpoints = await self.directory.refresh()
        self.assertEqual(endpoints, [self.a.endpoint, self.b.endpoint])
        self.assertIsNone(self.directory.tier(self.a.endpoint))

    async def test_show_all_includes_community(self):
        self.context.config.show_all_lps = True
        endpoints = await self.directory.refresh()
        self.assertEqual(endpoints, [self.a.endpoint, self.b.endpoint])

    async def test_pushed_registry_update(self):
        await self.directory.refresh()
        event = parse_event({"type": "lp_update", "data": {
            "endpoint": self.b.endpoint, "tier": 1, "status": "online"}})
        await self.directory.dispatch(event)
        self.assertEqual(self.directory.endpoints, [self.a.endpoint, self.b.endpoint])

    async def test_malformed_push_ignored(self):
        await self.directory.refresh()
        await self.directory.dispatch(parse_event({"type": "lp_update", "data": {"tier": 1}}))
        self.assertEqual(self.directory.endpoints, [self.a.endpoint])

    async def test_clients_are_shared(self):
        self.assertIs(self.directory.client(self.a.endpoint + "/"),
                      self.directory.client(self.a.endpoint))

    async def test_fetch_lp_info_skips_offline(self):
        self.a.on("GET", "/api/lp/info", {"lp_id": "lp_a", "name": "LPA", "version": "0.4"})
        self.b.on("GET", "/api/lp/info", error(503, "down"))
        online = await self.directory.fetch_lp_info()
        self.assertEqual(list(online), [self.a.endpoint])
        self.assertEqual(online[self.a.endpoint].name, "LPA")

    async def test_recent_swaps_deduplicated_newest_first(self):
        self.a.on("GET", "/api/swaps", {"swaps": [
            {"swap_id": "fs_1", "status": "completed", "created_at": 100},
            {"swap_id": "fs_3", "status": "lp_locked", "created_at": 300},
        ]})
        self.b.on("GET", "/api/swaps", {"swaps": [
            {"swap_id": "fs_1", "status": "completed", "created_at": 100},
            {"swap_id": "fs_2", "status": "failed", "created_at": 200},
        ]})
        rows = await self.directory.recent_swaps(limit=10)
        self.assertEqual([r["swap_id"] for r in rows], ["fs_3", "fs_2", "fs_1"])
        self.assertEqual(rows[0]["state"], "lp_locked")
        self.assertEqual(rows[0]["lp_endpoint"], self.a.endpoint)

    async def test_recent_swaps_limit(self):
        self.a.on("GET", "/api/swaps", {"swaps": [
            {"swap_id": f"fs_{i}", "status": "completed", "created_at": i} for i in range(5)
        ]})
        rows = await self.directory.recent_swaps(limit=2)
        self.assertEqual([r["swap_id"] for r in rows], ["fs_4", "fs_3"])


if __name__ == "__main__":
    unittest.main(verbosity=2)
