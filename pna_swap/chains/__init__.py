"""Chain helpers used by the client (EVM lock, address checks)."""

from .address import validate_destination, is_valid_btc_address, is_valid_evm_address
from .evm import EVMLocker, LockResult, LockInfo

__all__ = [
    "validate_destination",
    "is_valid_btc_address",
    "is_valid_evm_address",
    "EVMLocker",
    "LockResult",
    "LockInfo",
]
