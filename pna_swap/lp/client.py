"""
Async HTTP client for one LP endpoint.

Every response is validated against the v1 schemas. Failures are mapped onto
the client error taxonomy:

- timeout / connection error / 5xx / 429  -> TransportError (retryable)
- other 4xx                               -> BusinessRejection (verbatim)
- unexpected payload                      -> SchemaError

Reads and the idempotent funding notifications use the short LP timeout and
the retry policy. Initiation and the steps that make the LP act on-chain
(presign, m1-locked, deliver-secret, btc-claimed) are sent once and wait for
action_timeout: the LP replies only after its transaction is mined and
answers a repeat with "Invalid state".
"""

import asyncio
import logging
from typing import Optional, Dict, Any, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from ..core import Quote, Leg, RAIL_ASSET
from ..errors import TransportError, SchemaError, BusinessRejection
from ..retry import RetryPolicy, NO_RETRY
from ..schemas import v1

log = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

RETRYABLE_STATUS = (429, 502, 503, 504)


def ws_url(endpoint: str) -> str:
    """http(s)://host:port -> ws(s)://host:port/ws"""
    return endpoint.rstrip("/").replace("http", "ws", 1) + "/ws"


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        detail = body.get("detail") or body.get("error")
        if isinstance(detail, str):
            return detail
        if detail is not None:
            return str(detail)
    return f"HTTP {response.status_code}"


class LPClient:
    """Typed client for the LP flowswap API."""

    def __init__(self, endpoint: str, http: httpx.AsyncClient,
                 timeout: float = 4.0, retry: Optional[RetryPolicy] = None,
                 action_timeout: float = 180.0):
        self.endpoint = endpoint.rstrip("/")
        self.http = http
        self.timeout = timeout
        self.action_timeout = action_timeout
        self.retry = retry or RetryPolicy()

    def __repr__(self):
        return f"LPClient({self.endpoint})"

    @property
    def ws_url(self) -> str:
        return ws_url(self.endpoint)

    # -------------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------------

    async def _send(self, method: str, path: str, model: Type[M],
                    params: Optional[Dict[str, Any]] = None,
                    json: Optional[Dict[str, Any]] = None,
                    timeout: Optional[float] = None) -> M:
        url = f"{self.endpoint}{path}"
        timeout = timeout or self.timeout
        try:
            response = await asyncio.wait_for(
                self.http.request(method, url, params=params, json=json, timeout=timeout),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            raise TransportError(f"{self.endpoint}: timeout after {timeout}s")
        except httpx.HTTPError as e:
            raise TransportError(f"{self.endpoint}: {e.__class__.__name__}: {e}")

        status = response.status_code
        if status >= 500 or status in RETRYABLE_STATUS:
            raise TransportError(f"{self.endpoint}{path}: HTTP {status}", status_code=status)
        if status >= 400:
            raise BusinessRejection.from_detail(_error_detail(response), status_code=status)

        try:
            data = response.json()
        except ValueError:
            raise SchemaError(f"{self.endpoint}{path}: response is not JSON")
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise SchemaError(f"{self.endpoint}{path}: unexpected payload ({e.error_count()} errors)")

    async def _call(self, method: str, path: str, model: Type[M],
                    policy: Optional[RetryPolicy] = None, **kwargs) -> M:
        policy = policy or self.retry
        return await policy.run(self._send, method, path, model,
                                describe=f"{method} {self.endpoint}{path}", **kwargs)

    async def _act(self, path: str, model: Type[M], json: Dict[str, Any]) -> M:
        """One-shot POST for steps the LP does not accept twice."""
        return await self._call("POST", path, model, policy=NO_RETRY, json=json,
                                timeout=self.action_timeout)

    # -------------------------------------------------------------------------
    # Discovery and quotes
    # -------------------------------------------------------------------------

    async def get_info(self) -> v1.LPInfoResponse:
        return await self._call("GET", "/api/lp/info", v1.LPInfoResponse, policy=NO_RETRY)

    async def quote(self, from_asset: str, to_asset: str, amount: float) -> Quote:
        r = await self._call(
            "GET", "/api/quote", v1.QuoteResponse, policy=NO_RETRY,
            params={"from": from_asset, "to": to_asset, "amount": amount},
        )
        return Quote(
            lp_id=r.lp_id,
            lp_name=r.lp_name,
            endpoint=self.endpoint,
            from_asset=r.from_asset,
            to_asset=r.to_asset,
            from_amount=r.from_amount,
            to_amount=r.to_amount,
            rate=r.rate,
            spread_percent=r.spread_percent,
            route=r.route,
            settlement_time_seconds=r.settlement_time_seconds,
            settlement_time_human=r.settlement_time_human,
            confirmations_breakdown=dict(r.confirmations_breakdown),
            inventory_ok=r.inventory_ok,
            min_amount=r.min_amount,
            max_amount=r.max_amount,
            valid_until=r.valid_until,
        )

    async def quote_leg(self, from_asset: str, to_asset: str, amount: float) -> Leg:
        r = await self._call(
            "GET", "/api/quote/leg", v1.LegQuoteResponse, policy=NO_RETRY,
            params={"from": from_asset, "to": to_asset, "amount": amount},
        )
        return Leg(
            leg=r.leg,
            lp_id=r.lp_id,
            lp_name=r.lp_name,
            endpoint=self.endpoint,
            from_asset=r.from_asset,
            to_asset=r.to_asset,
            from_amount=r.from_amount,
            to_amount=r.to_amount,
            rate=r.rate,
            spread_percent=r.spread_percent,
            settlement_time_seconds=r.settlement_time_seconds,
            inventory_ok=r.inventory_ok,
            min_amount=r.min_amount,
            max_amount=r.max_amount,
        )

    async def list_swaps(self, limit: int = 20) -> v1.SwapListResponse:
        return await self._call("GET", "/api/swaps", v1.SwapListResponse,
                                policy=NO_RETRY, params={"limit": limit})

    # -------------------------------------------------------------------------
    # Initiation (plans only, nothing on-chain yet; sent once)
    # -------------------------------------------------------------------------

    async def init_forward(self, from_asset: str, to_asset: str, amount: float,
                           H_user: str, user_usdc_address: str) -> v1.InitForwardResponse:
        return await self._act("/api/flowswap/init", v1.InitForwardResponse, json={
            "from_asset": from_asset,
            "to_asset": to_asset,
            "amount": amount,
            "H_user": H_user,
            "user_usdc_address": user_usdc_address,
        })

    async def init_reverse(self, from_asset: str, to_asset: str, amount: float,
                           H_user: str, user_btc_claim_address: str) -> v1.InitReverseResponse:
        return await self._act("/api/flowswap/init", v1.InitReverseResponse, json={
            "from_asset": from_asset,
            "to_asset": to_asset,
            "amount": amount,
            "H_user": H_user,
            "user_btc_claim_address": user_btc_claim_address,
        })

    async def init_leg_out(self, to_asset: str, amount: float, H_user: str,
                           user_usdc_address: str) -> v1.LegOutInitResponse:
        """Second leg (M1 -> to_asset). Returns H_lp2 and the LP's M1 address."""
        return await self._act("/api/flowswap/init-leg", v1.LegOutInitResponse, json={
            "leg": f"{RAIL_ASSET}/{to_asset}",
            "from_asset": RAIL_ASSET,
            "to_asset": to_asset,
            "amount": amount,
            "H_user": H_user,
            "user_usdc_address": user_usdc_address,
        })

    async def init_leg_in(self, from_asset: str, amount: float, H_user: str,
                          H_lp2: str, lp_out_m1_address: str) -> v1.LegInInitResponse:
        """First leg (from_asset -> M1), locking M1 towards LP_OUT."""
        return await self._act("/api/flowswap/init-leg", v1.LegInInitResponse, json={
            "leg": f"{from_asset}/{RAIL_ASSET}",
            "from_asset": from_asset,
            "to_asset": RAIL_ASSET,
            "amount": amount,
            "H_user": H_user,
            "H_lp_other": H_lp2,
            "lp_out_m1_address": lp_out_m1_address,
        })

    # -------------------------------------------------------------------------
    # Swap progress
    # -------------------------------------------------------------------------

    async def get_status(self, swap_id: str) -> v1.SwapStatusResponse:
        return await self._call("GET", f"/api/flowswap/{swap_id}", v1.SwapStatusResponse,
                                policy=NO_RETRY)

    async def notify_deposit(self, swap_id: str) -> v1.BtcFundedResponse:
        return await self._call("POST", f"/api/flowswap/{swap_id}/btc-funded",
                                v1.BtcFundedResponse)

    async def notify_destination_lock(self, swap_id: str, htlc_id: str,
                                      policy: Optional[RetryPolicy] = None) -> v1.UsdcFundedResponse:
        return await self._call("POST", f"/api/flowswap/{swap_id}/usdc-funded",
                                v1.UsdcFundedResponse, policy=policy,
                                json={"htlc_id": htlc_id})

    async def presign(self, swap_id: str, S_user: str) -> v1.PresignResponse:
        return await self._act(f"/api/flowswap/{swap_id}/presign",
                               v1.PresignResponse, json={"S_user": S_user})

    async def notify_rail_locked(self, swap_id: str, outpoint: str,
                                 H_lp1: str) -> v1.RailLockedResponse:
        """LP_OUT locks USDC before replying with S_lp2."""
        return await self._act(f"/api/flowswap/{swap_id}/m1-locked",
                               v1.RailLockedResponse,
                               json={"m1_htlc_outpoint": outpoint, "H_lp1": H_lp1})

    async def deliver_secret(self, swap_id: str, S_lp2: str) -> v1.StepResponse:
        return await self._act(f"/api/flowswap/{swap_id}/deliver-secret",
                               v1.StepResponse, json={"S_lp2": S_lp2})

    async def notify_primary_claim(self, swap_id: str, claim_txid: str,
                                   S_user: str, S_lp1: str) -> v1.StepResponse:
        return await self._act(f"/api/flowswap/{swap_id}/btc-claimed",
                               v1.StepResponse, json={
                                   "btc_claim_txid": claim_txid,
                                   "S_user": S_user,
                                   "S_lp1": S_lp1,
                               })
