"""
Client configuration.
"""

import os
from dataclasses import dataclass, field
from typing import List

from .core import RAIL_ASSET, SESSION_EXPIRY_SECONDS


DEFAULT_REGISTRY_URL = "http://162.19.251.75:3003"

# EVM (Base Sepolia)
EVM_RPC_URL = "https://sepolia.base.org"
EVM_CHAIN_ID = 84532
USDC_CONTRACT_ADDRESS = "0x036CbD53842c5426634e7929541eC2318f3dCF7e"
HTLC3S_CONTRACT_ADDRESS = "0x2493EaaaBa6B129962c8967AaEE6bF11D0277756"
USDC_DECIMALS = 6


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class ClientConfig:
    """Swap client configuration."""
    # Discovery
    registry_url: str = DEFAULT_REGISTRY_URL
    lp_urls: List[str] = field(default_factory=list)  # Used when the registry is unreachable
    show_all_lps: bool = False                        # Include community (tier 2) LPs

    # Timeouts (seconds)
    registry_timeout: float = 3.0
    lp_timeout: float = 4.0
    action_timeout: float = 180.0  # LP steps that wait for an on-chain receipt

    # Intervals (seconds)
    poll_interval: float = 5.0
    quote_refresh: float = 10.0  # quote --watch, when no LP pushes quotes
    ping_interval: float = 25.0
    reconnect_min: float = 1.0
    reconnect_max: float = 30.0

    # Commit-path retries
    retry_attempts: int = 3
    retry_backoff: float = 3.0   # seconds * attempt

    # Session
    session_path: str = "~/.pna/swap_session.json"
    session_expiry: int = SESSION_EXPIRY_SECONDS

    # Verification gate: explicit confirmation before S_user goes out
    confirm_before_disclosure: bool = True

    min_amount: float = 0.0001   # in from_asset units; no LP is asked below it
    rail_asset: str = RAIL_ASSET

    # Reverse flow (user locks USDC)
    evm_rpc_url: str = EVM_RPC_URL
    evm_chain_id: int = EVM_CHAIN_ID
    htlc3s_address: str = HTLC3S_CONTRACT_ADDRESS
    usdc_address: str = USDC_CONTRACT_ADDRESS
    usdc_decimals: int = USDC_DECIMALS

    @classmethod
    def from_env(cls) -> "ClientConfig":
        """Build a config from PNA_* environment variables."""
        cfg = cls()
        cfg.registry_url = os.environ.get("PNA_REGISTRY_URL", cfg.registry_url).rstrip("/")
        urls = os.environ.get("PNA_LP_URLS", "")
        cfg.lp_urls = [u.strip().rstrip("/") for u in urls.split(",") if u.strip()]
        cfg.show_all_lps = _env_bool("PNA_SHOW_ALL_LPS", cfg.show_all_lps)
        cfg.session_path = os.environ.get("PNA_SESSION_PATH", cfg.session_path)
        cfg.confirm_before_disclosure = _env_bool(
            "PNA_CONFIRM_DISCLOSURE", cfg.confirm_before_disclosure)
        cfg.evm_rpc_url = os.environ.get("PNA_EVM_RPC_URL", cfg.evm_rpc_url)
        return cfg
