"""Push channels to LPs and the registry."""

from .events import (
    Event,
    LPInfoEvent,
    InventoryEvent,
    QuoteEvent,
    SwapUpdateEvent,
    ErrorEvent,
    PongEvent,
    RegistrySnapshotEvent,
    RegistryUpdateEvent,
    EventHandler,
    parse_event,
)
from .channel import Backoff, RealtimeChannel
from .hub import RealtimeHub

__all__ = [
    "Event",
    "LPInfoEvent",
    "InventoryEvent",
    "QuoteEvent",
    "SwapUpdateEvent",
    "ErrorEvent",
    "PongEvent",
    "RegistrySnapshotEvent",
    "RegistryUpdateEvent",
    "EventHandler",
    "parse_event",
    "Backoff",
    "RealtimeChannel",
    "RealtimeHub",
]
