"""
Typed push events from LPs and the registry.

Wire format: {"type": "<kind>", "data": {...}}. parse_event() turns a decoded
message into one of the dataclasses below; EventHandler.dispatch() routes it
to the matching on_* hook.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional, Dict, Any, List

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Event:
    source: str = ""   # endpoint the event came from


@dataclass(frozen=True)
class LPInfoEvent(Event):
    info: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class InventoryEvent(Event):
    inventory: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class QuoteEvent(Event):
    quote: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SwapUpdateEvent(Event):
    payload: Dict[str, Any] = field(default_factory=dict)

    @property
    def swap_id(self) -> str:
        return self.payload.get("swap_id", "")


@dataclass(frozen=True)
class ErrorEvent(Event):
    message: str = ""


@dataclass(frozen=True)
class PongEvent(Event):
    pass


@dataclass(frozen=True)
class RegistrySnapshotEvent(Event):
    lps: List[Dict[str, Any]] = field(default_factory=list)


@dataclass(frozen=True)
class RegistryUpdateEvent(Event):
    entry: Dict[str, Any] = field(default_factory=dict)


def parse_event(message: Dict[str, Any], source: str = "") -> Optional[Event]:
    """Decode one push message. Unknown types return None."""
    kind = message.get("type")
    data = message.get("data")
    if kind == "lps" and isinstance(data, list):
        return RegistrySnapshotEvent(source, lps=list(data))
    if not isinstance(data, dict):
        data = {}

    if kind == "lp_info":
        return LPInfoEvent(source, info=dict(data))
    if kind == "inventory":
        return InventoryEvent(source, inventory=dict(data))
    if kind == "quote":
        return QuoteEvent(source, quote=dict(data))
    if kind == "swap_update":
        return SwapUpdateEvent(source, payload=dict(data))
    if kind == "error":
        return ErrorEvent(source, message=data.get("message") or message.get("message", ""))
    if kind == "pong":
        return PongEvent(source)
    if kind == "lps":
        return RegistrySnapshotEvent(source, lps=list(data.get("lps", [])))
    if kind == "lp_update":
        return RegistryUpdateEvent(source, entry=dict(data))

    log.debug(f"Ignoring push message type={kind!r} from {source}")
    return None


class EventHandler:
    """Base handler: override the hooks you care about."""

    async def dispatch(self, event: Event) -> None:
        if isinstance(event, SwapUpdateEvent):
            await self.on_swap_update(event)
        elif isinstance(event, LPInfoEvent):
            await self.on_lp_info(event)
        elif isinstance(event, InventoryEvent):
            await self.on_inventory(event)
        elif isinstance(event, QuoteEvent):
            await self.on_quote(event)
        elif isinstance(event, RegistrySnapshotEvent):
            await self.on_registry_snapshot(event)
        elif isinstance(event, RegistryUpdateEvent):
            await self.on_registry_update(event)
        elif isinstance(event, ErrorEvent):
            await self.on_error(event)
        elif isinstance(event, PongEvent):
            pass

    async def on_swap_update(self, event: SwapUpdateEvent) -> None:
        pass

    async def on_lp_info(self, event: LPInfoEvent) -> None:
        pass

    async def on_inventory(self, event: InventoryEvent) -> None:
        pass

    async def on_quote(self, event: QuoteEvent) -> None:
        pass

    async def on_registry_snapshot(self, event: RegistrySnapshotEvent) -> None:
        pass

    async def on_registry_update(self, event: RegistryUpdateEvent) -> None:
        pass

    async def on_error(self, event: ErrorEvent) -> None:
        log.debug(f"[ws] {event.source}: {event.message}")
