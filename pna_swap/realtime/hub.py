"""
Push connections to every known LP plus the registry.

The hub caches the latest lp_info / inventory per endpoint and fans every
event out to its listeners (coordinator, LP directory).
"""

import logging
import time
from typing import Dict, List, Iterable, Optional, Callable, Any

import websockets

from ..lp.client import ws_url
from .channel import RealtimeChannel, Backoff
from .events import EventHandler, Event, LPInfoEvent, InventoryEvent

log = logging.getLogger(__name__)

REGISTRY_SOURCE = "registry"


class RealtimeHub(EventHandler):

    def __init__(self, ping_interval: float = 25.0, reconnect_min: float = 1.0,
                 reconnect_max: float = 30.0, connect: Callable = websockets.connect):
        self.ping_interval = ping_interval
        self.reconnect_min = reconnect_min
        self.reconnect_max = reconnect_max
        self._connect = connect
        self.channels: Dict[str, RealtimeChannel] = {}
        self.registry: Optional[RealtimeChannel] = None
        self.listeners: List[EventHandler] = []
        self.info_cache: Dict[str, Dict[str, Any]] = {}

    def add_listener(self, handler: EventHandler) -> None:
        if handler not in self.listeners:
            self.listeners.append(handler)

    def remove_listener(self, handler: EventHandler) -> None:
        if handler in self.listeners:
            self.listeners.remove(handler)

    def _channel(self, url: str, source: str) -> RealtimeChannel:
        return RealtimeChannel(
            url, self,
            ping_interval=self.ping_interval,
            backoff=Backoff(self.reconnect_min, self.reconnect_max),
            source=source,
            connect=self._connect,
        )

    async def sync(self, endpoints: Iterable[str]) -> None:
        """Open channels for new endpoints, close channels for removed ones."""
        wanted = [e.rstrip("/") for e in endpoints]
        for endpoint in list(self.channels):
            if endpoint not in wanted:
                channel = self.channels.pop(endpoint)
                await channel.close()
                log.debug(f"[ws] Closed channel for removed LP {endpoint}")
        for endpoint in wanted:
            if endpoint in self.channels:
                continue
            channel = self._channel(ws_url(endpoint), source=endpoint)
            await channel.subscribe("inventory")
            channel.start()
            self.channels[endpoint] = channel

    def connect_registry(self, registry_url: str) -> None:
        if self.registry is None:
            self.registry = self._channel(ws_url(registry_url), source=REGISTRY_SOURCE)
            self.registry.start()

    def is_connected(self, endpoint: Optional[str]) -> bool:
        if not endpoint:
            return False
        channel = self.channels.get(endpoint.rstrip("/"))
        return channel is not None and channel.connected

    def is_watching(self, endpoint: Optional[str], swap_id: Optional[str]) -> bool:
        """Connected and subscribed to this swap's updates."""
        if not self.is_connected(endpoint) or not swap_id:
            return False
        sub = self.channels[endpoint.rstrip("/")].subscriptions.get("swap")
        return sub is not None and sub.get("swap_id") == swap_id

    async def subscribe_swap(self, endpoint: str, swap_id: str) -> None:
        channel = self.channels.get(endpoint.rstrip("/"))
        if channel is not None:
            await channel.subscribe("swap", {"swap_id": swap_id})
            log.info(f"[ws] Subscribed to swap {swap_id} on {endpoint}")

    async def unsubscribe_swap(self, endpoint: str) -> None:
        channel = self.channels.get(endpoint.rstrip("/"))
        if channel is not None:
            await channel.unsubscribe("swap")

    async def subscribe_quotes(self, endpoint: str, from_asset: str, to_asset: str,
                               amount: float) -> None:
        if amount <= 0:
            return
        channel = self.channels.get(endpoint.rstrip("/"))
        if channel is not None and channel.connected:
            await channel.subscribe("quotes", {"from": from_asset, "to": to_asset, "amount": amount})

    async def dispatch(self, event: Event) -> None:
        if isinstance(event, (LPInfoEvent, InventoryEvent)):
            entry = self.info_cache.setdefault(event.source, {})
            if isinstance(event, LPInfoEvent):
                entry["info"] = event.info
            else:
                entry["inventory"] = event.inventory
            entry["ts"] = time.time()
        for listener in list(self.listeners):
            await listener.dispatch(event)

    async def close(self) -> None:
        for channel in list(self.channels.values()):
            await channel.close()
        self.channels.clear()
        if self.registry is not None:
            await self.registry.close()
            self.registry = None
