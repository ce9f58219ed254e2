"""LP HTTP client and discovery."""

from .client import LPClient, ws_url
from .registry import LPDirectory, select_endpoints

__all__ = ["LPClient", "ws_url", "LPDirectory", "select_endpoints"]
