"""
LP discovery.

The registry lists every LP registered on-chain with its trust tier:

    GET <registry>/api/registry/lps/online -> {"lps": [{endpoint, tier, ...}]}

Tier 1 LPs are operator-backed; tier 2 are community LPs and are only used
when show_all is set. Offline LPs are dropped. If the filter leaves nothing,
every registered LP is used.
"""

import asyncio
import logging
from typing import Dict, List, Optional, Iterable

import httpx
from pydantic import ValidationError

from ..config import ClientConfig
from ..errors import TransportError, SchemaError
from ..retry import RetryPolicy
from ..schemas.v1 import RegistryEntry, RegistryResponse, LPInfoResponse
from ..realtime.events import EventHandler, RegistrySnapshotEvent, RegistryUpdateEvent
from .client import LPClient

log = logging.getLogger(__name__)

OPERATOR_TIER = 1


def select_endpoints(entries: Iterable[RegistryEntry], show_all: bool = False) -> List[str]:
    entries = list(entries)
    selected = [
        e.endpoint for e in entries
        if (show_all or e.tier == OPERATOR_TIER) and e.status != "offline"
    ]
    if not selected:
        selected = [e.endpoint for e in entries]
    return selected


class LPDirectory(EventHandler):
    """Current LP set and a shared HTTP client per endpoint."""

    def __init__(self, config: ClientConfig, http: Optional[httpx.AsyncClient] = None,
                 retry: Optional[RetryPolicy] = None):
        self.config = config
        self._own_http = http is None
        self.http = http or httpx.AsyncClient(timeout=config.lp_timeout)
        self.retry = retry or RetryPolicy(max_attempts=config.retry_attempts)
        self.entries: Dict[str, RegistryEntry] = {}
        self.endpoints: List[str] = [u.rstrip("/") for u in config.lp_urls]
        self._clients: Dict[str, LPClient] = {}
        self._on_change = []

    def on_change(self, callback) -> None:
        """callback(endpoints) after the active LP set changes."""
        self._on_change.append(callback)

    def client(self, endpoint: str) -> LPClient:
        endpoint = endpoint.rstrip("/")
        c = self._clients.get(endpoint)
        if c is None:
            c = LPClient(endpoint, self.http, timeout=self.config.lp_timeout, retry=self.retry,
                         action_timeout=self.config.action_timeout)
            self._clients[endpoint] = c
        return c

    def clients(self) -> List[LPClient]:
        return [self.client(e) for e in self.endpoints]

    def tier(self, endpoint: str) -> Optional[int]:
        entry = self.entries.get(endpoint.rstrip("/"))
        return entry.tier if entry else None

    # -------------------------------------------------------------------------
    # Registry snapshot / updates
    # -------------------------------------------------------------------------

    async def refresh(self) -> List[str]:
        """Load the registry over HTTP. Falls back to configured LP URLs."""
        url = f"{self.config.registry_url.rstrip('/')}/api/registry/lps/online"
        try:
            response = await asyncio.wait_for(self.http.get(url),
                                              timeout=self.config.registry_timeout)
            response.raise_for_status()
            data = RegistryResponse.model_validate(response.json())
        except (httpx.HTTPError, asyncio.TimeoutError, ValueError, ValidationError) as e:
            log.warning(f"Registry unavailable ({e.__class__.__name__}), "
                        f"using {len(self.config.lp_urls)} configured LPs")
            return self.endpoints

        if data.lps:
            self.apply_snapshot(data.lps)
            log.info(f"Registry: {len(data.lps)} LPs discovered, {len(self.endpoints)} active")
        return self.endpoints

    def apply_snapshot(self, entries: Iterable[RegistryEntry]) -> None:
        self.entries = {e.endpoint.rstrip("/"): e for e in entries}
        self._reselect()

    def apply_update(self, entry: RegistryEntry) -> None:
        self.entries[entry.endpoint.rstrip("/")] = entry
        self._reselect()

    def _reselect(self) -> None:
        endpoints = [e.rstrip("/") for e in select_endpoints(self.entries.values(),
                                                            self.config.show_all_lps)]
        if endpoints != self.endpoints:
            self.endpoints = endpoints
            for callback in self._on_change:
                callback(list(endpoints))

    async def on_registry_snapshot(self, event: RegistrySnapshotEvent) -> None:
        try:
            entries = [RegistryEntry.model_validate(e) for e in event.lps]
        except ValidationError:
            log.debug("[ws] Ignoring malformed registry snapshot")
            return
        if entries:
            self.apply_snapshot(entries)

    async def on_registry_update(self, event: RegistryUpdateEvent) -> None:
        try:
            entry = RegistryEntry.model_validate(event.entry)
        except ValidationError:
            log.debug("[ws] Ignoring malformed registry update")
            return
        self.apply_update(entry)

    # -------------------------------------------------------------------------
    # LP info fan-out
    # -------------------------------------------------------------------------

    async def fetch_lp_info(self) -> Dict[str, LPInfoResponse]:
        """Query /api/lp/info on every active LP. Returns the ones that answered."""
        clients = self.clients()
        results = await asyncio.gather(*(c.get_info() for c in clients),
                                       return_exceptions=True)
        online = {}
        for c, result in zip(clients, results):
            if isinstance(result, LPInfoResponse):
                online[c.endpoint] = result
            elif isinstance(result, (TransportError, SchemaError)):
                log.debug(f"LP {c.endpoint} offline: {result}")
            elif isinstance(result, BaseException):
                log.warning(f"LP {c.endpoint} info failed: {result}")
        log.info(f"LP info: {len(online)}/{len(clients)} online")
        return online

    async def recent_swaps(self, limit: int = 20) -> List[dict]:
        """Recent swaps across LPs, deduplicated by swap_id, newest first."""
        clients = self.clients()
        results = await asyncio.gather(*(c.list_swaps(limit) for c in clients),
                                       return_exceptions=True)
        seen = {}
        for c, result in zip(clients, results):
            if isinstance(result, BaseException):
                log.debug(f"LP {c.endpoint} swaps unavailable: {result}")
                continue
            for s in result.swaps:
                if s.swap_id not in seen:
                    row = s.model_dump()
                    row["lp_endpoint"] = c.endpoint
                    seen[s.swap_id] = row
        rows = sorted(seen.values(), key=lambda r: r.get("created_at", 0), reverse=True)
        return rows[:limit]

    async def close(self) -> None:
        if self._own_http and not self.http.is_closed:
            await self.http.aclose()
