#!/usr/bin/env python3
"""
Example: BTC -> USDC Swap through the M1 rail

This demonstrates the full swap flow from the user's side:

1. Discover LPs (registry, or PNA_LP_URLS when it is unreachable)
2. Quote every LP and pick the best route (direct or split across two LPs)
3. Initiate the swap and get a BTC deposit address
4. User sends BTC to the deposit address
5. LP locks USDC on Base; the client verifies the lock
6. Client reveals S_user by presigning, LPs settle all legs

Usage:
    python btc_to_usdc_swap.py 0.001 0xYourBaseAddress
"""

import sys
import asyncio
import logging
from pathlib import Path

# Add package to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from pna_swap import (
    ClientConfig, SwapContext, QuoteEngine, SwapCoordinator, SwapError,
    FullRoute, SwapState,
)

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s [%(levelname)s] %(message)s'
)
log = logging.getLogger(__name__)


async def run(amount_btc: float, dest: str) -> int:
    # =================================================================
    # 1. Discover LPs
    # =================================================================
    config = ClientConfig.from_env()
    context = SwapContext.create(config)
    notices: asyncio.Queue = asyncio.Queue()
    coordinator = SwapCoordinator(context, listener=notices.put_nowait)

    try:
        endpoints = await context.directory.refresh()
        log.info(f"LPs: {', '.join(endpoints) or 'none'}")

        # =============================================================
        # 2. Get best route
        # =============================================================
        log.info(f"Getting quote for {amount_btc} BTC -> USDC...")
        route = await QuoteEngine(context).best_route("BTC", "USDC", amount_btc)

        if route is None:
            log.error("Amount must be positive")
            return 1
        if isinstance(route, FullRoute):
            log.info(f"Direct route via {route.quote.lp_name}: {route.to_amount} USDC")
        else:
            log.info(f"Split route: {route.description}: {route.to_amount} USDC")

        # =============================================================
        # 3. Initiate swap
        # =============================================================
        swap = await coordinator.start(dest)
        log.info(f"Swap {swap.swap_id} initiated")

        # =============================================================
        # 4-6. Follow progress until the LPs settle
        # =============================================================
        while swap.in_flight and context.swap is swap:
            try:
                notice = await asyncio.wait_for(notices.get(), timeout=1.0)
            except asyncio.TimeoutError:
                continue
            log.info(f"[{notice.level}] {notice.message}")
            if notice.kind == "verify":
                verification = notice.data.get("verification")
                if verification is None or not verification.ok:
                    log.warning("LP lock did not verify, not revealing the secret")
                    await coordinator.cancel_disclosure()
                    break
                await coordinator.confirm_disclosure()

        log.info(f"Final state: {swap.state.value}")
        return 0 if swap.state == SwapState.COMPLETED else 1

    except SwapError as e:
        log.error(e.user_message())
        return 1
    finally:
        await coordinator.close()
        await context.close()


def main():
    if len(sys.argv) != 3:
        print(__doc__)
        return 1
    return asyncio.run(run(float(sys.argv[1]), sys.argv[2]))


if __name__ == "__main__":
    sys.exit(main())
