#!/usr/bin/env python3
"""
pna-swap: command-line front end for the swap client.

    pna-swap lps                         # registry + online LPs
    pna-swap quote BTC USDC 0.01         # best route
    pna-swap quote BTC USDC 0.01 --watch # keep it fresh until Ctrl-C
    pna-swap swap BTC USDC 0.01 0xDest   # run a swap end to end
    pna-swap resume                      # continue a swap from the session store
    pna-swap swaps                       # recent swaps across LPs
"""

import argparse
import asyncio
import logging
import os
import sys
from typing import Optional

from eth_account import Account

from .config import ClientConfig
from .core import FullRoute, PerLegRoute, SwapState
from .errors import SwapError, DisclosureBlocked
from .realtime.hub import RealtimeHub
from .routing.engine import QuoteEngine, QuoteFeed
from .swap.context import SwapContext
from .swap.coordinator import SwapCoordinator, Notice
from .chains.evm import EVMLocker

log = logging.getLogger("pna_swap")


def _print_route(route) -> None:
    if isinstance(route, FullRoute):
        q = route.quote
        print(f"Route:   {q.route} via {q.lp_name} ({q.endpoint})")
        print(f"Output:  {q.to_amount} {q.to_asset}")
        print(f"Rate:    {q.rate}  spread {q.spread_percent}%")
        print(f"Time:    {q.settlement_time_human or f'{q.settlement_time_seconds}s'}")
    elif isinstance(route, PerLegRoute):
        print(f"Route:   {route.description}")
        print(f"Leg 1:   {route.leg1.from_amount} {route.leg1.from_asset} -> "
              f"{route.leg1.to_amount} {route.leg1.to_asset} ({route.leg1.lp_name})")
        print(f"Leg 2:   {route.leg2.from_amount} {route.leg2.from_asset} -> "
              f"{route.leg2.to_amount} {route.leg2.to_asset} ({route.leg2.lp_name})")
        print(f"Output:  {route.to_amount} {route.to_asset}")
        print(f"Spread:  {route.total_spread:.2f}%  time ~{route.settlement_time_seconds}s")


class _Session:
    """Wires context, push hub and coordinator for one CLI command."""

    def __init__(self, args):
        self.config = ClientConfig.from_env()
        if args.show_all:
            self.config.show_all_lps = True
        if args.auto_confirm:
            self.config.confirm_before_disclosure = False
        self.context = SwapContext.create(self.config)
        self.hub = None if args.no_ws else RealtimeHub(
            ping_interval=self.config.ping_interval,
            reconnect_min=self.config.reconnect_min,
            reconnect_max=self.config.reconnect_max,
        )
        self.notices: asyncio.Queue = asyncio.Queue()
        self.coordinator = SwapCoordinator(
            self.context, hub=self.hub, locker=self._locker(args),
            listener=self.notices.put_nowait,
        )

    def _locker(self, args) -> Optional[EVMLocker]:
        key = os.environ.get(args.evm_key_env) if args.evm_key_env else None
        if not key:
            return EVMLocker.from_config(self.config)
        return EVMLocker.from_config(self.config, account=Account.from_key(key))

    async def __aenter__(self):
        endpoints = await self.context.directory.refresh()
        if self.hub is not None:
            self.hub.add_listener(self.context.directory)
            self.hub.connect_registry(self.config.registry_url)
            await self.hub.sync(endpoints)
            self.context.directory.on_change(
                lambda eps: asyncio.ensure_future(self.hub.sync(eps)))
        return self

    async def __aexit__(self, *exc):
        await self.coordinator.close()
        if self.hub is not None:
            await self.hub.close()
        await self.context.close()

    async def follow(self) -> SwapState:
        """Print progress until the swap ends, prompting at the commit gate."""
        swap = self.context.swap
        # cancel_disclosure() drops the swap from the context
        while self.context.swap is swap and swap.in_flight:
            try:
                notice: Notice = await asyncio.wait_for(self.notices.get(), timeout=1.0)
            except asyncio.TimeoutError:
                continue
            print(f"[{notice.level}] {notice.message}")
            if notice.kind == "verify" and self.config.confirm_before_disclosure:
                await self._gate(notice)
        return swap.state

    async def _gate(self, notice: Notice) -> None:
        verification = notice.data.get("verification")
        ok = verification is not None and verification.ok
        prompt = "Reveal secret? [y/N] " if ok else "Warnings found. Override and reveal? [y/N] "
        answer = (await asyncio.to_thread(input, prompt)).strip().lower()
        if answer != "y":
            await self.coordinator.cancel_disclosure()
            return
        try:
            await self.coordinator.confirm_disclosure(override=not ok)
        except DisclosureBlocked as e:
            print(f"Blocked: {e.message}")
        except SwapError as e:
            print(f"Presign failed: {e.user_message()}")


async def cmd_lps(args) -> int:
    async with _Session(args) as s:
        directory = s.context.directory
        info = await directory.fetch_lp_info()
        for endpoint in directory.endpoints:
            tier = directory.tier(endpoint)
            label = {1: "operator", 2: "community"}.get(tier, "configured")
            lp = info.get(endpoint)
            state = f"online  {lp.name} v{lp.version}" if lp else "offline"
            print(f"{endpoint:40s} {label:10s} {state}")
    return 0


async def cmd_quote(args) -> int:
    async with _Session(args) as s:
        engine = QuoteEngine(s.context)
        if not args.watch:
            route = await engine.best_route(args.from_asset, args.to_asset, args.amount)
            if route is None:
                print("Amount must be positive")
                return 1
            _print_route(route)
            return 0

        feed = QuoteFeed(engine, hub=s.hub, interval=s.config.quote_refresh)
        shown = 0
        async for route in feed.routes(args.from_asset, args.to_asset, args.amount):
            if shown:
                print()
            _print_route(route)
            shown += 1
        if not shown:
            print("Amount must be positive")
            return 1
    return 0


async def cmd_swap(args) -> int:
    async with _Session(args) as s:
        route = await QuoteEngine(s.context).best_route(args.from_asset, args.to_asset,
                                                        args.amount)
        if route is None:
            print("Amount must be positive")
            return 1
        _print_route(route)
        swap = await s.coordinator.start(args.dest)
        print(f"Swap {swap.swap_id} started")
        state = await s.follow()
    return 0 if state == SwapState.COMPLETED else 1


async def cmd_resume(args) -> int:
    async with _Session(args) as s:
        swap = await s.coordinator.resume()
        if swap is None:
            print("No swap to resume")
            return 0
        print(f"Resumed swap {swap.swap_id} ({swap.state.value})")
        state = await s.follow()
    return 0 if state == SwapState.COMPLETED else 1


async def cmd_swaps(args) -> int:
    async with _Session(args) as s:
        rows = await s.context.directory.recent_swaps(args.limit)
        for r in rows:
            print(f"{r['swap_id']:24s} {r['state']:14s} {r['from_amount']} {r['from_asset']} -> "
                  f"{r['to_amount']} {r['to_asset']}  {r['lp_endpoint']}")
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        prog="pna-swap",
        description="Trustless BTC <-> USDC swaps through the M1 rail"
    )
    parser.add_argument("--show-all", action="store_true",
                        help="Include community (tier 2) LPs")
    parser.add_argument("--no-ws", action="store_true",
                        help="Poll only, no push connections")
    parser.add_argument("--auto-confirm", action="store_true",
                        help="Reveal the secret automatically when the LP lock verifies")
    parser.add_argument("--evm-key-env", type=str, default="PNA_EVM_PRIVATE_KEY",
                        help="Environment variable holding the EVM key for USDC -> BTC swaps")
    parser.add_argument("-v", "--verbose", action="store_true")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("lps", help="List LPs")

    for name in ("quote", "swap"):
        p = sub.add_parser(name, help=f"{name.capitalize()} a swap")
        p.add_argument("from_asset", type=str.upper)
        p.add_argument("to_asset", type=str.upper)
        p.add_argument("amount", type=float)
        if name == "swap":
            p.add_argument("dest", help="Destination address for to_asset")
        else:
            p.add_argument("--watch", action="store_true",
                           help="Keep re-quoting (pushed quotes, else every quote_refresh seconds)")

    sub.add_parser("resume", help="Resume the swap in the session store")

    p = sub.add_parser("swaps", help="Recent swaps across LPs")
    p.add_argument("--limit", type=int, default=20)

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s [%(levelname)s] %(message)s'
    )

    commands = {
        "lps": cmd_lps,
        "quote": cmd_quote,
        "swap": cmd_swap,
        "resume": cmd_resume,
        "swaps": cmd_swaps,
    }
    if args.command not in commands:
        parser.print_help()
        return 1
    try:
        return asyncio.run(commands[args.command](args))
    except SwapError as e:
        print(f"ERROR: {e.user_message()}")
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
