"""
Per-leg secret relay between two LPs.

LP_IN runs the source leg (BTC -> M1), LP_OUT the destination leg
(M1 -> USDC). The LPs never talk to each other; the client carries:

    1. init-leg on LP_OUT          -> H_lp2, LP_OUT's M1 address
    2. init-leg on LP_IN           -> H_lp1, BTC deposit address
    3. LP_IN locked M1             -> m1-locked to LP_OUT, receive S_lp2
    4. deliver S_lp2 to LP_IN      (checked against H_lp2 first)
    5. LP_IN claimed BTC           -> btc-claimed to LP_OUT (txid, S_user, S_lp1)
    6. LP_OUT completed            -> swap completed

Steps 3-5 each run at most once per swap; the guards live on the Swap and
are persisted with it. A step the LP rejects is not failed outright when the
LP's status shows it was already taken by an earlier attempt.
"""

import asyncio
import logging
from typing import Optional, Callable

from ..core import (
    Swap, SwapDirection, SwapState, PerLegRoute,
    map_wire_state, verify_preimage,
)
from ..errors import SwapError, BusinessRejection, CoordinationError
from ..lp.registry import LPDirectory
from ..schemas.v1 import SwapStatusResponse

log = logging.getLogger(__name__)


def moved_past(status: Optional[SwapStatusResponse], state: SwapState) -> bool:
    """True if an LP status shows the swap already beyond `state` (and not failed)."""
    new = map_wire_state(status.state) if status is not None else None
    if new is None:
        return False
    if new == SwapState.COMPLETED:
        return True
    return not new.is_terminal and new.rank > state.rank


class PerLegRelay:

    def __init__(self, directory: LPDirectory, persist: Callable[[], None]):
        self.directory = directory
        self._persist = persist
        self._lock = asyncio.Lock()

    # -------------------------------------------------------------------------
    # Steps 1-2: plans (nothing on-chain yet)
    # -------------------------------------------------------------------------

    async def initiate(self, route: PerLegRoute, dest_address: str,
                       S_user: str, H_user: str) -> Swap:
        lp_out = self.directory.client(route.leg2.endpoint)
        lp_in = self.directory.client(route.leg1.endpoint)

        log.info(f"Per-leg init: LP_OUT={route.leg2.lp_name} ({route.leg2.leg}), "
                 f"LP_IN={route.leg1.lp_name} ({route.leg1.leg})")
        out = await lp_out.init_leg_out(route.to_asset, route.leg2.from_amount,
                                        H_user, dest_address)
        inp = await lp_in.init_leg_in(route.from_asset, route.from_amount, H_user,
                                      out.H_lp2, out.lp_m1_address)

        echoed = inp.hashlocks.H_lp2
        if echoed and echoed.lower() != out.H_lp2.lower():
            raise CoordinationError(
                "LP_IN plan does not commit to LP_OUT's H_lp2",
                step="init-leg", funds_committed=False)

        expiries = [t for t in (inp.plan_expires_at, out.plan_expires_at) if t]
        swap = Swap(
            swap_id=inp.swap_id,
            direction=SwapDirection.FORWARD,
            from_asset=route.from_asset,
            to_asset=route.to_asset,
            from_amount=route.from_amount,
            to_amount=out.usdc_output.amount or route.to_amount,
            dest_address=dest_address,
            lp_endpoint=route.leg1.endpoint,
            lp_name=inp.lp_name or route.leg1.lp_name,
            state=map_wire_state(inp.state) or SwapState.AWAITING_DEPOSIT,
            H_user=H_user,
            H_lp1=inp.H_lp1,
            H_lp2=out.H_lp2,
            expires_at=min(expiries) if expiries else 0,
            deposit_address=inp.btc_deposit.address,
            deposit_amount_sats=inp.btc_deposit.amount_sats,
            is_perleg=True,
            swap_id_out=out.swap_id,
            lp_out_endpoint=route.leg2.endpoint,
            lp_out_name=out.lp_name or route.leg2.lp_name,
            S_user=S_user,
        )
        log.info(f"Per-leg swap {swap.swap_id} / {swap.swap_id_out}: "
                 f"H_lp1={swap.H_lp1[:16]}... H_lp2={swap.H_lp2[:16]}...")
        return swap

    # -------------------------------------------------------------------------
    # Status re-reads after a rejected step
    # -------------------------------------------------------------------------

    async def _status(self, endpoint: str, swap_id: str) -> Optional[SwapStatusResponse]:
        try:
            return await self.directory.client(endpoint).get_status(swap_id)
        except SwapError as e:
            log.warning(f"Status check {swap_id} failed: {e.message}")
            return None

    async def _recover_S_lp2(self, swap: Swap) -> Optional[str]:
        """S_lp2 from LP_OUT's status, once it shows it."""
        status = await self._status(swap.lp_out_endpoint, swap.swap_id_out)
        S_lp2 = status.secrets.S_lp2 if status is not None and status.secrets else ""
        if S_lp2 and verify_preimage(S_lp2, swap.H_lp2):
            return S_lp2
        return None

    # -------------------------------------------------------------------------
    # Steps 3-4: M1 lock proof to LP_OUT, S_lp2 back to LP_IN
    # -------------------------------------------------------------------------

    async def on_rail_locked(self, swap: Swap, status: SwapStatusResponse) -> bool:
        """Relay LP_IN's M1 lock. True once both steps are done.

        A rejected step is checked against the LP's status first: an earlier
        attempt that timed out may have gone through.
        """
        async with self._lock:
            if not swap.rail_locked_notified:
                outpoint = status.rail_outpoint
                if not outpoint:
                    log.debug(f"{swap.swap_id}: M1 locked but no outpoint yet")
                    return False
                lp_out = self.directory.client(swap.lp_out_endpoint)
                try:
                    r = await lp_out.notify_rail_locked(swap.swap_id_out, outpoint, swap.H_lp1)
                except BusinessRejection as e:
                    out = await self._status(swap.lp_out_endpoint, swap.swap_id_out)
                    if not moved_past(out, SwapState.AWAITING_DEPOSIT):
                        raise CoordinationError(
                            f"{swap.lp_out_name or 'LP_OUT'} rejected the M1 lock: {e.message}",
                            step="m1-locked")
                    log.warning(f"LP_OUT already took the M1 lock (state {out.state}): {e.message}")
                    swap.evm_htlc_id = out.evm.htlc_id or swap.evm_htlc_id
                    swap.evm_lock_txhash = out.evm.lock_txhash or swap.evm_lock_txhash
                    S_lp2 = out.secrets.S_lp2 if out.secrets else ""
                    if S_lp2 and verify_preimage(S_lp2, swap.H_lp2):
                        swap.S_lp2 = S_lp2
                else:
                    if not verify_preimage(r.S_lp2, swap.H_lp2):
                        raise CoordinationError("S_lp2 from LP_OUT does not match H_lp2",
                                                step="m1-locked")
                    swap.S_lp2 = r.S_lp2
                    swap.evm_htlc_id = r.evm_htlc_id or swap.evm_htlc_id
                    swap.evm_lock_txhash = r.evm_lock_txhash or swap.evm_lock_txhash
                swap.rail_locked_notified = True
                self._persist()
                log.info(f"LP_OUT notified of M1 lock {outpoint}; USDC HTLC "
                         f"{(swap.evm_htlc_id or '?')[:18]}...")

            if not swap.secret_delivered:
                if not swap.S_lp2:
                    swap.S_lp2 = await self._recover_S_lp2(swap)
                    if not swap.S_lp2:
                        log.warning(f"{swap.swap_id}: waiting for LP_OUT to show S_lp2")
                        return False
                    self._persist()
                lp_in = self.directory.client(swap.lp_endpoint)
                try:
                    await lp_in.deliver_secret(swap.swap_id, swap.S_lp2)
                except BusinessRejection as e:
                    current = await self._status(swap.lp_endpoint, swap.swap_id)
                    if not moved_past(current, SwapState.RAIL_LOCKED):
                        raise CoordinationError(
                            f"{swap.lp_name or 'LP_IN'} rejected S_lp2: {e.message}",
                            step="deliver-secret")
                    log.warning(f"LP_IN already has S_lp2 (state {current.state}): {e.message}")
                swap.secret_delivered = True
                self._persist()
                log.info(f"S_lp2 delivered to LP_IN for {swap.swap_id}")
            return True

    # -------------------------------------------------------------------------
    # Step 5: LP_IN's BTC claim to LP_OUT
    # -------------------------------------------------------------------------

    async def on_primary_claimed(self, swap: Swap, claim_txid: Optional[str],
                                 S_lp1: Optional[str]) -> bool:
        """Relay the BTC claim. True if the notification was sent now."""
        async with self._lock:
            if swap.primary_claim_notified or not claim_txid or not S_lp1:
                return False
            if not verify_preimage(S_lp1, swap.H_lp1):
                raise CoordinationError("S_lp1 from LP_IN does not match H_lp1",
                                        step="btc-claimed")
            lp_out = self.directory.client(swap.lp_out_endpoint)
            try:
                await lp_out.notify_primary_claim(swap.swap_id_out, claim_txid,
                                                  swap.S_user, S_lp1)
            except BusinessRejection as e:
                out = await self._status(swap.lp_out_endpoint, swap.swap_id_out)
                if not moved_past(out, SwapState.COUNTERPARTY_LOCKED):
                    raise CoordinationError(
                        f"{swap.lp_out_name or 'LP_OUT'} rejected the BTC claim: {e.message}",
                        step="btc-claimed")
                log.warning(f"LP_OUT already has the BTC claim (state {out.state}): {e.message}")
            swap.primary_claim_notified = True
            swap.primary_claim_txid = claim_txid
            self._persist()
            log.info(f"LP_OUT notified of BTC claim {claim_txid[:16]}...")
            return True

    # -------------------------------------------------------------------------
    # Step 6: completion comes from LP_OUT
    # -------------------------------------------------------------------------

    @staticmethod
    def second_leg_outcome(status: SwapStatusResponse) -> Optional[SwapState]:
        state = map_wire_state(status.state)
        if state is None or not state.is_terminal:
            return None
        return state
