"""
Session store for the in-flight swap.

Holds the only persisted copy of S_user, next to the swap record and the
active LP endpoint:

    {"S_user": "...", "swap": {...}, "lp_url": "http://...", "ts": 1700000000}

A snapshot older than the expiry, or missing the secret or swap id, is
discarded on load.
"""

import json
import logging
import os
import time
from dataclasses import dataclass
from typing import Optional, Callable

from ..core import Swap, SESSION_EXPIRY_SECONDS

log = logging.getLogger(__name__)


@dataclass
class Session:
    S_user: str
    swap: Swap
    lp_url: str
    ts: float


class SessionStore:

    def __init__(self, path: str, expiry: int = SESSION_EXPIRY_SECONDS,
                 clock: Callable[[], float] = time.time):
        self.path = os.path.expanduser(path)
        self.expiry = expiry
        self.clock = clock

    def save(self, swap: Swap, S_user: str, lp_url: str) -> None:
        """Persist the swap snapshot (owner-only permissions)."""
        record = {
            "S_user": S_user,
            "swap": swap.to_dict(),
            "lp_url": lp_url,
            "ts": self.clock(),
        }
        tmp = f"{self.path}.tmp"
        try:
            directory = os.path.dirname(self.path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "w") as f:
                json.dump(record, f, indent=2)
            os.replace(tmp, self.path)
        except OSError as e:
            log.error(f"Failed to save swap session: {e}")

    def load(self) -> Optional[Session]:
        """Return the stored session if it is still valid, else discard it."""
        if not os.path.exists(self.path):
            return None
        try:
            with open(self.path, "r") as f:
                record = json.load(f)
        except (OSError, ValueError) as e:
            log.warning(f"Discarding unreadable swap session: {e}")
            self.clear()
            return None

        age = self.clock() - float(record.get("ts", 0))
        swap_data = record.get("swap") or {}
        if age > self.expiry:
            log.info(f"Swap session expired ({int(age)}s old), discarding")
            self.clear()
            return None
        if not record.get("S_user") or not swap_data.get("swap_id"):
            log.warning("Swap session incomplete, discarding")
            self.clear()
            return None

        try:
            swap = Swap.from_dict(swap_data)
        except (KeyError, ValueError, TypeError) as e:
            log.warning(f"Swap session malformed ({e}), discarding")
            self.clear()
            return None
        swap.S_user = record["S_user"]
        return Session(S_user=record["S_user"], swap=swap,
                       lp_url=record.get("lp_url", swap.lp_endpoint), ts=record["ts"])

    def clear(self) -> None:
        try:
            os.remove(self.path)
        except FileNotFoundError:
            pass
        except OSError as e:
            log.error(f"Failed to clear swap session: {e}")
