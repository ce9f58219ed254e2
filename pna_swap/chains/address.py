"""
Destination address checks before a swap is initiated.
"""

import logging
from typing import Optional

import bech32
from web3 import Web3

log = logging.getLogger(__name__)

# Bech32 human-readable parts: mainnet, testnet/signet
BTC_HRPS = ("bc", "tb")


def is_valid_evm_address(address: str) -> bool:
    """EVM address, checksummed or all one case."""
    if not address or not Web3.is_address(address):
        return False
    if address[2:].islower() or address[2:].isupper():
        return True
    return Web3.is_checksum_address(address)


def is_valid_btc_address(address: str, hrp: Optional[str] = None) -> bool:
    """Segwit (bech32 / bech32m) address on `hrp` (any known network if None)."""
    if not address:
        return False
    address = address.strip()
    candidates = (hrp,) if hrp else BTC_HRPS
    for prefix in candidates:
        if not address.lower().startswith(prefix + "1"):
            continue
        witver, witprog = bech32.decode(prefix, address)
        if witver is not None and witprog is not None:
            return True
    return False


def validate_destination(asset: str, address: str) -> str:
    """Normalized destination for `asset`. Raises ValueError if invalid."""
    address = (address or "").strip()
    if asset == "USDC":
        if not is_valid_evm_address(address):
            raise ValueError(f"Invalid EVM address: {address!r}")
        return Web3.to_checksum_address(address)
    if asset == "BTC":
        if not is_valid_btc_address(address):
            raise ValueError(f"Invalid BTC address: {address!r}")
        return address.lower()
    if not address:
        raise ValueError(f"Missing {asset} destination address")
    return address
