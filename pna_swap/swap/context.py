"""
Explicit client context: configuration, LP set, active route and the one
active swap. Passed to the quote engine and the coordinator.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from ..config import ClientConfig
from ..core import Route, Swap
from ..lp.registry import LPDirectory
from .session import SessionStore

log = logging.getLogger(__name__)


@dataclass
class SwapContext:
    config: ClientConfig
    directory: LPDirectory
    sessions: SessionStore
    active_route: Optional[Route] = None
    swap: Optional[Swap] = None

    @classmethod
    def create(cls, config: Optional[ClientConfig] = None,
               http: Optional[httpx.AsyncClient] = None) -> "SwapContext":
        config = config or ClientConfig.from_env()
        return cls(
            config=config,
            directory=LPDirectory(config, http=http),
            sessions=SessionStore(config.session_path, expiry=config.session_expiry),
        )

    @property
    def in_flight(self) -> bool:
        return self.swap is not None and self.swap.in_flight

    def bind_route(self, route: Optional[Route]) -> bool:
        """Make `route` the active route unless a swap is running."""
        if self.in_flight:
            log.debug("Swap in flight, keeping the active route")
            return False
        self.active_route = route
        return True

    async def close(self) -> None:
        await self.directory.close()
