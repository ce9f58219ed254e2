"""
Reconnecting WebSocket channel to one LP (or the registry).

- Reconnect backoff 1s doubling to 30s, reset on a successful connect
- App-level {"type": "ping"} every 25s
- Subscriptions are remembered and replayed after every reconnect
- Transport errors are logged at debug level; callers only see `connected`
"""

import asyncio
import json
import logging
from typing import Dict, Any, Optional, Callable

import websockets
from websockets.exceptions import ConnectionClosed

from .events import EventHandler, parse_event

log = logging.getLogger(__name__)


class Backoff:
    """Exponential reconnect delay: 1, 2, 4, 8, 16, 30, 30, ..."""

    def __init__(self, initial: float = 1.0, maximum: float = 30.0):
        self.initial = initial
        self.maximum = maximum
        self.current = initial

    def next(self) -> float:
        delay = self.current
        self.current = min(self.current * 2, self.maximum)
        return delay

    def reset(self) -> None:
        self.current = self.initial


class RealtimeChannel:
    """One push connection with subscription replay."""

    def __init__(self, url: str, handler: EventHandler,
                 ping_interval: float = 25.0,
                 backoff: Optional[Backoff] = None,
                 source: str = "",
                 connect: Callable = websockets.connect):
        self.url = url
        self.handler = handler
        self.ping_interval = ping_interval
        self.backoff = backoff or Backoff()
        self.source = source or url
        self._connect = connect
        self._subs: Dict[str, Dict[str, Any]] = {}
        self._ws = None
        self._task: Optional[asyncio.Task] = None
        self._closed = False

    @property
    def connected(self) -> bool:
        return self._ws is not None

    @property
    def subscriptions(self) -> Dict[str, Dict[str, Any]]:
        return dict(self._subs)

    def start(self) -> None:
        if self._task is None and not self._closed:
            self._task = asyncio.create_task(self._run())

    async def close(self) -> None:
        self._closed = True
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        self._ws = None

    async def subscribe(self, channel: str, data: Optional[Dict[str, Any]] = None) -> None:
        self._subs[channel] = dict(data or {})
        if self._ws is not None:
            await self._send({"type": "subscribe", "channel": channel, "data": self._subs[channel]})

    async def unsubscribe(self, channel: str) -> None:
        self._subs.pop(channel, None)
        if self._ws is not None:
            await self._send({"type": "unsubscribe", "channel": channel})

    # -------------------------------------------------------------------------

    async def _run(self) -> None:
        while not self._closed:
            try:
                async with self._connect(self.url, ping_interval=None) as ws:
                    self._ws = ws
                    self.backoff.reset()
                    log.debug(f"[ws] Connected: {self.url}")
                    for channel, data in self._subs.items():
                        await self._send({"type": "subscribe", "channel": channel, "data": data})
                    pinger = asyncio.create_task(self._ping_loop())
                    try:
                        async for raw in ws:
                            await self._handle(raw)
                    finally:
                        pinger.cancel()
                        self._ws = None
            except asyncio.CancelledError:
                raise
            except (ConnectionClosed, OSError, asyncio.TimeoutError) as e:
                log.debug(f"[ws] {self.url} disconnected: {e}")
            except Exception as e:
                log.debug(f"[ws] {self.url} error: {e.__class__.__name__}: {e}")
            self._ws = None
            if not self._closed:
                await asyncio.sleep(self.backoff.next())

    async def _ping_loop(self) -> None:
        while self._ws is not None:
            await asyncio.sleep(self.ping_interval)
            await self._send({"type": "ping"})

    async def _send(self, message: Dict[str, Any]) -> None:
        ws = self._ws
        if ws is None:
            return
        try:
            await ws.send(json.dumps(message))
        except (ConnectionClosed, OSError) as e:
            log.debug(f"[ws] send to {self.url} failed: {e}")

    async def _handle(self, raw) -> None:
        try:
            message = json.loads(raw)
        except ValueError:
            log.debug(f"[ws] Invalid JSON from {self.url}: {str(raw)[:100]}")
            return
        if not isinstance(message, dict):
            return
        event = parse_event(message, source=self.source)
        if event is None:
            return
        try:
            await self.handler.dispatch(event)
        except Exception:
            log.warning(f"[ws] Handler failed for {type(event).__name__} from {self.source}",
                        exc_info=True)
