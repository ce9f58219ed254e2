"""
Swap coordinator: drives one swap from plan to settlement.

Anti-grief model, user commits first:

    AWAITING_DEPOSIT   plan only; user funds the BTC deposit (forward) or
                       locks USDC on EVM (reverse)
    DEPOSIT_DETECTED   LP saw the deposit, stability window running
    RAIL_LOCKED        per-leg only: LP_IN locked M1, relay runs
    COUNTERPARTY_LOCKED LP HTLCs on-chain -> verification gate -> presign(S_user)
    PRIMARY_CLAIMED    LP claimed the user's deposit, secrets on-chain
    COMPLETING / COMPLETED

S_user never leaves the client before COUNTERPARTY_LOCKED and, with the gate
enabled, an explicit confirm_disclosure(). Updates arrive by push when the
LP's channel is connected, by polling otherwise; both go through
apply_status(), which ignores stale and duplicate states.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Optional, Callable, Dict, Any

from pydantic import ValidationError

from ..chains.address import validate_destination
from ..chains.evm import EVMLocker
from ..core import (
    Swap, SwapState, SwapDirection, Route, PerLegRoute,
    map_wire_state, generate_secret, sats_to_btc,
)
from ..errors import (
    SwapError, TransportError, BusinessRejection, NoRouteError, CoordinationError,
    DisclosureBlocked, UserDeclined, SwapInFlight, ProtocolTimeout,
)
from ..lp.client import LPClient
from ..realtime.events import EventHandler, SwapUpdateEvent
from ..realtime.hub import RealtimeHub
from ..retry import RetryPolicy, linear_backoff
from ..schemas.v1 import SwapStatusResponse
from .context import SwapContext
from .relay import PerLegRelay, moved_past
from .verify import LockVerification, verify_counterparty_lock

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Notice:
    """User-facing progress message."""
    kind: str                 # state | countdown | deposit | verify | error | route_fallback | info
    message: str
    level: str = "pending"    # pending | success | warning | error
    state: Optional[SwapState] = None
    data: Dict[str, Any] = field(default_factory=dict)


STATE_MESSAGES = {
    SwapState.RAIL_LOCKED: "LP_IN locked M1. Relaying lock proof to LP_OUT...",
    SwapState.COUNTERPARTY_LOCKED: "LP locked funds on-chain. Verify before revealing your secret.",
    SwapState.PRIMARY_CLAIMED: "LP claimed the deposit. Secrets are on-chain, settling...",
    SwapState.COMPLETING: "Claims in progress...",
}


class SwapCoordinator(EventHandler):

    def __init__(self, context: SwapContext, hub: Optional[RealtimeHub] = None,
                 locker: Optional[EVMLocker] = None,
                 listener: Optional[Callable[[Notice], None]] = None,
                 clock: Callable[[], float] = time.time,
                 sleep=asyncio.sleep,
                 commit_retry: Optional[RetryPolicy] = None):
        self.context = context
        self.hub = hub
        self.locker = locker
        self.listener = listener
        self.clock = clock
        self._sleep = sleep
        cfg = context.config
        self.commit_retry = commit_retry or RetryPolicy(
            max_attempts=cfg.retry_attempts,
            backoff=linear_backoff(cfg.retry_backoff),
            sleep=sleep,
        )
        self.relay = PerLegRelay(context.directory, self._persist)
        self.verification: Optional[LockVerification] = None
        self._disclosing = asyncio.Lock()
        self._poll_task: Optional[asyncio.Task] = None
        if hub is not None:
            hub.add_listener(self)

    @property
    def swap(self) -> Optional[Swap]:
        return self.context.swap

    def _client(self, endpoint: str) -> LPClient:
        return self.context.directory.client(endpoint)

    def _require_swap(self) -> Swap:
        if self.swap is None:
            raise SwapError("No active swap")
        return self.swap

    def _notify(self, kind: str, message: str, level: str = "pending", **data) -> None:
        swap = self.swap
        notice = Notice(kind, message, level, swap.state if swap else None, data)
        if level == "error":
            log.warning(f"[{kind}] {message}")
        else:
            log.info(f"[{kind}] {message}")
        if self.listener:
            self.listener(notice)

    def _persist(self) -> None:
        swap = self.swap
        if swap is None or not swap.S_user or swap.state.is_terminal:
            return
        self.context.sessions.save(swap, swap.S_user, swap.lp_endpoint)

    # =========================================================================
    # Initiation
    # =========================================================================

    async def start(self, dest_address: str, route: Optional[Route] = None) -> Swap:
        """Initiate a swap on the active (or given) route.

        Forward swaps return with deposit instructions. Reverse swaps also
        create the user's USDC lock and notify the LP.
        """
        if self.context.in_flight:
            raise SwapInFlight(f"Swap {self.swap.swap_id} is still in progress")
        route = route or self.context.active_route
        if route is None:
            raise NoRouteError("No route selected. Request a quote first.")
        try:
            dest = validate_destination(route.to_asset, dest_address)
        except ValueError as e:
            raise SwapError(str(e))

        S_user, H_user = generate_secret()
        direction = SwapDirection.REVERSE if route.from_asset == "USDC" else SwapDirection.FORWARD
        log.info(f"Starting {direction.value} swap {route.from_amount} {route.from_asset} -> "
                 f"{route.to_asset}, H_user={H_user[:16]}...")

        if isinstance(route, PerLegRoute) and direction == SwapDirection.FORWARD:
            swap = await self.relay.initiate(route, dest, S_user, H_user)
        else:
            if isinstance(route, PerLegRoute):
                endpoint, lp_name = route.leg1.endpoint, route.leg1.lp_name
                log.warning(f"Reverse swaps are single-LP: falling back from "
                            f"{route.description} to {lp_name}")
                self._notify("route_fallback",
                             f"{route.from_asset} -> {route.to_asset} runs on a single LP "
                             f"({lp_name}); the split-route quote of {route.to_amount} "
                             f"{route.to_asset} may not apply.",
                             level="warning", quoted=route.to_amount, endpoint=endpoint)
            else:
                endpoint, lp_name = route.quote.endpoint, route.quote.lp_name
            swap = await self._init_single(direction, endpoint, lp_name, route, dest,
                                           S_user, H_user)

        self.context.swap = swap
        self.context.active_route = route
        self.verification = None
        self._persist()
        await self._subscribe()
        self.watch()

        if direction == SwapDirection.FORWARD:
            self._notify("deposit",
                         f"Send {sats_to_btc(swap.deposit_amount_sats):.8f} BTC to "
                         f"{swap.deposit_address}",
                         address=swap.deposit_address, amount_sats=swap.deposit_amount_sats)
        else:
            await self.lock_destination()
        return swap

    async def _init_single(self, direction: SwapDirection, endpoint: str, lp_name: str,
                           route: Route, dest: str, S_user: str, H_user: str) -> Swap:
        client = self._client(endpoint)
        if direction == SwapDirection.FORWARD:
            r = await client.init_forward(route.from_asset, route.to_asset, route.from_amount,
                                          H_user, dest)
            extra = dict(
                to_amount=r.usdc_output.amount,
                deposit_address=r.btc_deposit.address,
                deposit_amount_sats=r.btc_deposit.amount_sats,
            )
        else:
            r = await client.init_reverse(route.from_asset, route.to_asset, route.from_amount,
                                          H_user, dest)
            extra = dict(
                to_amount=r.btc_output.amount_btc,
                usdc_lock=r.usdc_deposit.model_dump(),
            )

        if r.hashlocks.H_user and r.hashlocks.H_user.lower() != H_user.lower():
            raise CoordinationError("LP plan does not commit to your H_user",
                                    step="init", funds_committed=False)

        return Swap(
            swap_id=r.swap_id,
            direction=direction,
            from_asset=route.from_asset,
            to_asset=route.to_asset,
            from_amount=route.from_amount,
            dest_address=dest,
            lp_endpoint=endpoint,
            lp_name=r.lp_name or lp_name,
            state=map_wire_state(r.state) or SwapState.AWAITING_DEPOSIT,
            H_user=H_user,
            H_lp1=r.hashlocks.H_lp1,
            H_lp2=r.hashlocks.H_lp2,
            expires_at=r.plan_expires_at,
            S_user=S_user,
            **extra,
        )

    async def lock_destination(self) -> Optional[SwapState]:
        """Reverse flow: create the USDC HTLC (once) and notify the LP.

        Safe to call again after UserDeclined or a failed notification.
        """
        swap = self._require_swap()
        if swap.direction != SwapDirection.REVERSE:
            raise SwapError("Only USDC -> BTC swaps lock on EVM")

        if not swap.user_htlc_id:
            if self.locker is None:
                raise SwapError("No EVM wallet configured for USDC -> BTC swaps")
            if swap.expires_at and self.clock() > swap.expires_at:
                raise ProtocolTimeout("Swap plan expired before the USDC lock. Nothing was sent.")
            p = swap.usdc_lock or {}
            if p.get("contract", "").lower() != self.locker.contract_address.lower():
                raise SwapError(f"LP asked for an unknown HTLC contract {p.get('contract')}")
            self._notify("info", "Creating USDC HTLC (3 hashlocks)...")
            result = await asyncio.to_thread(
                self.locker.create_lock, p["recipient"], p["amount"], swap.H_user,
                swap.H_lp1, swap.H_lp2, p["timelock_seconds"], p["token"])
            if not result.success:
                if result.declined:
                    raise UserDeclined("Wallet rejected the USDC lock. Nothing was sent.")
                raise SwapError(f"USDC lock failed: {result.error}")
            swap.user_htlc_id = result.htlc_id
            self._persist()
            self._notify("info", f"USDC locked: {result.htlc_id[:18]}... Notifying LP...",
                         htlc_id=result.htlc_id, tx_hash=result.tx_hash)

        try:
            await self._client(swap.lp_endpoint).notify_destination_lock(
                swap.swap_id, swap.user_htlc_id, policy=self.commit_retry)
        except SwapError as e:
            e.funds_committed = True
            self._notify("error",
                         f"LP notification failed: {e.message}. Your USDC is safe in the "
                         f"HTLC and refunds after the timelock.", level="error")
            raise
        return await self.refresh(force=True)

    async def notify_deposit(self) -> Optional[SwapState]:
        """Forward flow: tell the LP the BTC deposit was sent."""
        swap = self._require_swap()
        if swap.direction != SwapDirection.FORWARD:
            raise SwapError("Deposit notification is for BTC deposits")
        try:
            r = await self._client(swap.lp_endpoint).notify_deposit(swap.swap_id)
        except BusinessRejection as e:
            log.info(f"LP has not seen the deposit yet: {e.message}")
            self._notify("info", "BTC not confirmed yet. Please wait and try again.")
            return None
        log.info(f"Deposit acknowledged: state={r.state} confs={r.confirmations}")
        return await self.refresh(force=True)

    # =========================================================================
    # Watching
    # =========================================================================

    async def _subscribe(self) -> None:
        swap = self.swap
        if self.hub is None or swap is None:
            return
        await self.hub.subscribe_swap(swap.lp_endpoint, swap.swap_id)
        if swap.is_perleg and swap.lp_out_endpoint and swap.lp_out_endpoint != swap.lp_endpoint:
            await self.hub.subscribe_swap(swap.lp_out_endpoint, swap.swap_id_out)

    def _pushed(self, endpoint: Optional[str], swap_id: Optional[str]) -> bool:
        return self.hub is not None and self.hub.is_watching(endpoint, swap_id)

    def watch(self) -> None:
        """Start the poll loop (idles while push updates are flowing)."""
        if self._poll_task is None or self._poll_task.done():
            self._poll_task = asyncio.create_task(self._poll_loop())

    async def _poll_loop(self) -> None:
        while self.swap is not None and self.swap.in_flight:
            await self._sleep(self.context.config.poll_interval)
            try:
                await self.refresh()
            except asyncio.CancelledError:
                raise
            except SwapError as e:
                log.warning(f"Swap poll: {e.message}")
            except Exception as e:
                log.error(f"Swap poll error: {e}")

    async def refresh(self, force: bool = False) -> Optional[SwapState]:
        """One poll tick: expiry check, then status from whichever LP is not pushing."""
        swap = self.swap
        if swap is None or swap.state.is_terminal:
            return swap.state if swap else None

        if await self._check_expiry():
            return swap.state

        if force or not self._pushed(swap.lp_endpoint, swap.swap_id):
            status = await self._fetch_status(swap.lp_endpoint, swap.swap_id)
            if status is not None:
                await self.apply_status(status)

        if (swap.is_perleg and swap.primary_claim_notified and swap.in_flight
                and (force or not self._pushed(swap.lp_out_endpoint, swap.swap_id_out))):
            status = await self._fetch_status(swap.lp_out_endpoint, swap.swap_id_out)
            if status is not None:
                await self.apply_status(status)
        return swap.state

    async def _fetch_status(self, endpoint: str, swap_id: str) -> Optional[SwapStatusResponse]:
        try:
            return await self._client(endpoint).get_status(swap_id)
        except TransportError as e:
            log.warning(f"Status poll {swap_id} failed: {e.message}")
        except BusinessRejection as e:
            log.warning(f"Status poll {swap_id} rejected: {e.message}")
        return None

    async def _check_expiry(self) -> bool:
        """Plan expiry before any deposit: nothing was ever locked."""
        swap = self.swap
        if (swap.state != SwapState.AWAITING_DEPOSIT or not swap.expires_at
                or swap.user_htlc_id or self.clock() <= swap.expires_at):
            return False
        log.info(f"Swap {swap.swap_id} plan expired at {swap.expires_at}")
        if self._accept(SwapState.EXPIRED) is not None:
            await self._finish()
        return True

    async def on_swap_update(self, event: SwapUpdateEvent) -> None:
        swap = self.swap
        if swap is None or event.swap_id not in (swap.swap_id, swap.swap_id_out):
            return
        try:
            status = SwapStatusResponse.model_validate(event.payload)
        except ValidationError:
            log.debug(f"[ws] Ignoring malformed swap_update for {event.swap_id}")
            return
        await self.apply_status(status)

    # =========================================================================
    # State machine
    # =========================================================================

    def _accept(self, new: SwapState, error: Optional[str] = None) -> Optional[SwapState]:
        """Apply a transition. Returns the state entered, or None if ignored."""
        swap = self.swap
        current = swap.state
        if current.is_terminal:
            return None
        if new == current:
            # Only the stability countdown re-enters
            return new if new == SwapState.DEPOSIT_DETECTED else None
        if new == SwapState.EXPIRED and not current.is_pre_lock:
            new = SwapState.FAILED
            error = error or "LP reported expiry after locking"
        if not new.is_terminal and new.rank < current.rank:
            log.debug(f"{swap.swap_id}: ignoring stale {new.value} (at {current.value})")
            return None
        log.info(f"Swap {swap.swap_id}: {current.value} -> {new.value}")
        swap.state = new
        swap.updated_at = int(self.clock())
        if error:
            swap.error = error
        return new

    async def apply_status(self, status: SwapStatusResponse) -> None:
        """Fold one LP status (push or poll) into the swap."""
        swap = self.swap
        if swap is None or swap.state.is_terminal:
            return

        if swap.is_perleg and status.swap_id == swap.swap_id_out:
            outcome = self.relay.second_leg_outcome(status)
            if outcome is not None and self._accept(outcome, status.error) is not None:
                await self._finish()
            return
        if status.swap_id != swap.swap_id:
            return

        new = map_wire_state(status.state)
        if new is None:
            log.debug(f"{swap.swap_id}: unknown LP state {status.state!r}")
            return
        if swap.is_perleg and new == SwapState.COMPLETED:
            # LP_IN done; completion comes from LP_OUT
            new = SwapState.COMPLETING

        self._record(status)
        entered = self._accept(new, status.error)
        if entered is not None:
            if entered.is_terminal:
                await self._finish()
                return
            self._persist()
            self._on_enter(entered, status)
        await self._drive(status)

    def _record(self, status: SwapStatusResponse) -> None:
        swap = self.swap
        swap.H_lp1 = swap.H_lp1 or status.hashlocks.H_lp1
        swap.H_lp2 = swap.H_lp2 or status.hashlocks.H_lp2
        if status.evm.htlc_id and not swap.is_perleg:
            swap.evm_htlc_id = status.evm.htlc_id
            swap.evm_lock_txhash = status.evm.lock_txhash or swap.evm_lock_txhash
        if status.btc.claim_txid:
            swap.primary_claim_txid = status.btc.claim_txid

    def _on_enter(self, state: SwapState, status: SwapStatusResponse) -> None:
        swap = self.swap
        if state == SwapState.DEPOSIT_DETECTED:
            remaining = 0
            if status is not None and status.stability_check_until:
                remaining = max(0, int(status.stability_check_until - self.clock()))
            if swap.direction == SwapDirection.FORWARD:
                msg = (f"BTC deposit detected. Stability check {remaining}s..." if remaining
                       else "BTC deposit detected. LP locking...")
            else:
                msg = "USDC lock detected. LP locking BTC..."
            self._notify("countdown", msg, remaining=remaining)
        elif state in STATE_MESSAGES:
            self._notify("state", STATE_MESSAGES[state])

    async def _drive(self, status: SwapStatusResponse) -> None:
        """Pending work for the current state; every step is idempotent."""
        swap = self.swap
        state = swap.state
        if swap.is_perleg and state == SwapState.RAIL_LOCKED:
            await self._relay(self.relay.on_rail_locked(swap, status))
        elif state == SwapState.COUNTERPARTY_LOCKED and self.verification is None:
            await self._open_gate(status)
        elif swap.is_perleg and state in (SwapState.PRIMARY_CLAIMED, SwapState.COMPLETING):
            S_lp1 = status.secrets.S_lp1 if status.secrets else None
            await self._relay(self.relay.on_primary_claimed(
                swap, status.btc.claim_txid or swap.primary_claim_txid, S_lp1))

    async def _relay(self, step) -> None:
        try:
            await step
        except CoordinationError as e:
            swap = self.swap
            log.error(f"Relay step {e.step} failed for {swap.swap_id}: {e.message}")
            if self._accept(SwapState.FAILED, f"{e.step}: {e.message}") is not None:
                await self._finish()
        except TransportError as e:
            log.warning(f"Relay step deferred: {e.message}")
            self._notify("info", "LP unreachable, will retry the relay on the next update.",
                         level="warning")

    # =========================================================================
    # Commit gate
    # =========================================================================

    async def _open_gate(self, status: SwapStatusResponse) -> None:
        swap = self.swap
        locked_amount = None
        # Per-leg: the USDC lock is LP_OUT's, LP_IN's status carries no amount
        htlc_id = swap.evm_htlc_id if swap.is_perleg else (status.evm.htlc_id or swap.evm_htlc_id)
        if self.locker is not None and swap.direction == SwapDirection.FORWARD and htlc_id:
            try:
                info = await asyncio.to_thread(self.locker.get_lock, htlc_id)
            except Exception as e:
                log.warning(f"Could not read LP HTLC {htlc_id[:18]}...: {e}")
                info = None
            if info is not None:
                locked_amount = info.amount
        if locked_amount is None and swap.is_perleg:
            out = await self._fetch_status(swap.lp_out_endpoint, swap.swap_id_out)
            locked_amount = out.usdc_amount if out is not None else 0.0

        self.verification = verify_counterparty_lock(swap, status, locked_amount)
        v = self.verification
        if v.ok and not self.context.config.confirm_before_disclosure:
            self._notify("verify", "LP lock verified. Revealing secret...", verification=v)
            await self._disclose_quietly()
            return
        level = "pending" if v.ok else "warning"
        self._notify("verify", "Verify the LP lock, then confirm to reveal your secret.\n"
                     + v.summary(), level=level, verification=v)

    async def confirm_disclosure(self, override: bool = False):
        """User confirmed the gate. Mismatches need override=True."""
        swap = self._require_swap()
        if swap.state != SwapState.COUNTERPARTY_LOCKED or self.verification is None:
            raise SwapError("Nothing to confirm: LP lock not verified yet",
                            funds_committed=not swap.state.is_pre_lock)
        if not self.verification.ok and not override:
            raise DisclosureBlocked("Lock verification has warnings; override to disclose",
                                    self.verification.warnings)
        if not self.verification.ok:
            log.warning(f"Disclosing S_user for {swap.swap_id} despite "
                        f"{len(self.verification.warnings)} warning(s)")
        return await self._disclose()

    async def _disclose_quietly(self) -> None:
        try:
            await self._disclose()
        except SwapError as e:
            log.warning(f"Automatic disclosure failed, gate reopened: {e.message}")

    async def _disclose(self):
        """presign(S_user) to the primary LP."""
        swap = self._require_swap()
        taken = None
        async with self._disclosing:
            if swap.state != SwapState.COUNTERPARTY_LOCKED:
                return None
            try:
                r = await self._client(swap.lp_endpoint).presign(swap.swap_id, swap.S_user)
            except BusinessRejection as e:
                # An earlier presign that timed out may have been accepted
                taken = await self._fetch_status(swap.lp_endpoint, swap.swap_id)
                if not moved_past(taken, SwapState.COUNTERPARTY_LOCKED):
                    e.funds_committed = True
                    self._notify("error", f"Presign failed: {e.message}. Confirm again to retry.",
                                 level="error")
                    raise
                log.warning(f"Presign already accepted for {swap.swap_id} "
                            f"(state {taken.state}): {e.message}")
                self.verification = None
            except SwapError as e:
                e.funds_committed = True
                self._notify("error", f"Presign failed: {e.message}. Confirm again to retry.",
                             level="error")
                raise
            else:
                log.info(f"Presign accepted for {swap.swap_id}: state={r.state}")
                self.verification = None
                if r.btc_claim_txid:
                    swap.primary_claim_txid = r.btc_claim_txid

                new = map_wire_state(r.state)
                if swap.is_perleg and new == SwapState.COMPLETED:
                    new = SwapState.COMPLETING
                entered = self._accept(new) if new else None
                if entered is not None:
                    if entered.is_terminal:
                        await self._finish()
                        return r
                    self._persist()
                    self._on_enter(entered, None)

        if taken is not None:
            await self.apply_status(taken)
            return None
        if swap.is_perleg and r.btc_claim_txid and r.S_lp1:
            await self._relay(self.relay.on_primary_claimed(swap, r.btc_claim_txid, r.S_lp1))
        return r

    async def cancel_disclosure(self) -> None:
        """Keep S_user private. LP locks refund to the LP, the user's deposit after its timelock."""
        swap = self._require_swap()
        asset = swap.from_asset
        await self._stop()
        self.context.sessions.clear()
        swap.S_user = None
        swap.error = "cancelled before disclosure"
        self.verification = None
        self.context.swap = None
        self._notify("info", f"Swap cancelled. Your {asset} will refund after the HTLC timelock.",
                     level="warning")

    # =========================================================================
    # Resume / close
    # =========================================================================

    async def resume(self) -> Optional[Swap]:
        """Pick up a swap from the session store without re-initiating it."""
        if self.context.in_flight:
            raise SwapInFlight(f"Swap {self.swap.swap_id} is still in progress")
        session = self.context.sessions.load()
        if session is None:
            return None
        swap = session.swap
        self.context.swap = swap
        self.verification = None
        log.info(f"Resuming swap {swap.swap_id} at {swap.state.value} on {session.lp_url}")
        self._notify("state", f"Resuming swap {swap.swap_id}...")
        await self._subscribe()
        await self.refresh(force=True)
        if swap.in_flight:
            self.watch()
        return swap

    async def abandon(self) -> None:
        """Drop a swap whose deposit was never made: stop polling, forget S_user."""
        swap = self._require_swap()
        if swap.state != SwapState.AWAITING_DEPOSIT or swap.user_htlc_id:
            raise SwapError("Deposit already made; the swap continues until it settles or refunds",
                            funds_committed=True)
        await self._stop()
        self.context.sessions.clear()
        swap.S_user = None
        self.context.swap = None
        log.info(f"Abandoned swap {swap.swap_id} before deposit")

    async def close(self) -> None:
        """Shut down. A swap with committed funds stays in the session store."""
        swap = self.swap
        if swap is not None and swap.in_flight and swap.state == SwapState.AWAITING_DEPOSIT \
                and not swap.user_htlc_id:
            await self.abandon()
        else:
            await self._stop()
        if self.hub is not None:
            self.hub.remove_listener(self)

    async def _stop(self) -> None:
        """Cancel polling and drop push subscriptions for the active swap."""
        task, self._poll_task = self._poll_task, None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
        swap = self.swap
        if self.hub is not None and swap is not None:
            await self.hub.unsubscribe_swap(swap.lp_endpoint)
            if swap.is_perleg and swap.lp_out_endpoint:
                await self.hub.unsubscribe_swap(swap.lp_out_endpoint)

    async def _finish(self) -> None:
        """Terminal state reached: stop watching, clear the session once."""
        swap = self.swap
        await self._stop()
        self.context.sessions.clear()
        self.verification = None
        swap.S_user = None

        state = swap.state
        if state == SwapState.COMPLETED:
            self._notify("state", f"Success! {swap.to_amount} {swap.to_asset} sent to "
                         f"{swap.dest_address[:10]}...", level="success")
        elif state == SwapState.EXPIRED:
            self._notify("state", "Plan expired. No funds were locked by either side.",
                         level="error")
        elif state == SwapState.REFUNDED:
            self._notify("state", f"Swap timed out. {swap.from_asset} refunded.", level="error")
        else:
            if swap.direction == SwapDirection.FORWARD:
                note = "Your BTC refunds after the HTLC timelock if it was sent."
            else:
                note = "Your USDC refunds after the HTLC timelock if it was locked."
            self._notify("state", f"Swap failed: {swap.error or 'unknown error'}. {note}",
                         level="error")
