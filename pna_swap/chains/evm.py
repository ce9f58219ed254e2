"""
User-side EVM lock for the reverse flow (USDC -> BTC).

Creates the user's USDC HTLC on the HashedTimelockERC20_3S contract and reads
LP HTLCs back for the verification gate.

- 3 hashlocks: H_user, H_lp1, H_lp2
- Claim is permissionless, funds go to the fixed recipient
- SHA256 hashlocks, shared with the BTC and M1 legs

Calls are blocking (web3 HTTPProvider); the coordinator runs them in a thread.
"""

import logging
import time
from typing import Optional, Dict
from dataclasses import dataclass

from web3 import Web3
from web3.exceptions import ContractLogicError

from ..config import (
    HTLC3S_CONTRACT_ADDRESS,
    USDC_CONTRACT_ADDRESS,
    EVM_RPC_URL,
    EVM_CHAIN_ID,
    USDC_DECIMALS,
    ClientConfig,
)

log = logging.getLogger(__name__)

ZERO_ADDRESS = "0x" + "0" * 40

# HTLC3S ABI (create + getHTLC only)
HTLC3S_ABI = [
    {
        "name": "create",
        "type": "function",
        "inputs": [
            {"name": "recipient", "type": "address"},
            {"name": "token", "type": "address"},
            {"name": "amount", "type": "uint256"},
            {"name": "H_user", "type": "bytes32"},
            {"name": "H_lp1", "type": "bytes32"},
            {"name": "H_lp2", "type": "bytes32"},
            {"name": "timelock", "type": "uint256"}
        ],
        "outputs": [{"name": "htlcId", "type": "bytes32"}]
    },
    {
        "name": "getHTLC",
        "type": "function",
        "stateMutability": "view",
        "inputs": [{"name": "htlcId", "type": "bytes32"}],
        "outputs": [
            {"name": "sender", "type": "address"},
            {"name": "recipient", "type": "address"},
            {"name": "token", "type": "address"},
            {"name": "amount", "type": "uint256"},
            {"name": "H_user", "type": "bytes32"},
            {"name": "H_lp1", "type": "bytes32"},
            {"name": "H_lp2", "type": "bytes32"},
            {"name": "timelock", "type": "uint256"},
            {"name": "claimed", "type": "bool"},
            {"name": "refunded", "type": "bool"}
        ]
    }
]

ERC20_ABI = [
    {
        "name": "approve",
        "type": "function",
        "inputs": [
            {"name": "spender", "type": "address"},
            {"name": "amount", "type": "uint256"}
        ],
        "outputs": [{"name": "", "type": "bool"}]
    },
    {
        "name": "allowance",
        "type": "function",
        "stateMutability": "view",
        "inputs": [
            {"name": "owner", "type": "address"},
            {"name": "spender", "type": "address"}
        ],
        "outputs": [{"name": "", "type": "uint256"}]
    }
]

_DECLINE_MARKERS = ("user rejected", "user denied", "rejected by user", "declined")


def _hex32(value: str) -> bytes:
    value = value[2:] if value.startswith("0x") else value
    return bytes.fromhex(value)


@dataclass
class LockResult:
    """Outcome of the user's lock."""
    success: bool
    htlc_id: Optional[str] = None
    tx_hash: Optional[str] = None
    error: Optional[str] = None
    declined: bool = False


@dataclass
class LockInfo:
    """On-chain view of an HTLC3S lock."""
    htlc_id: str
    sender: str
    recipient: str
    token: str
    amount: float
    H_user: str
    H_lp1: str
    H_lp2: str
    timelock: int
    claimed: bool
    refunded: bool

    @property
    def status(self) -> str:
        if self.claimed:
            return "claimed"
        if self.refunded:
            return "refunded"
        if int(time.time()) >= self.timelock:
            return "expired"
        return "active"


class EVMLocker:
    """
    Creates and reads 3S HTLCs.

    `account` is an eth_account LocalAccount (or anything exposing .address
    and .sign_transaction); key custody stays with the caller.
    """

    def __init__(self, account=None, contract_address: str = HTLC3S_CONTRACT_ADDRESS,
                 rpc_url: str = EVM_RPC_URL, chain_id: int = EVM_CHAIN_ID,
                 decimals: int = USDC_DECIMALS, web3: Optional[Web3] = None):
        self.account = account
        self.contract_address = contract_address
        self.rpc_url = rpc_url
        self.chain_id = chain_id
        self.decimals = decimals
        self._web3 = web3

    @classmethod
    def from_config(cls, config: ClientConfig, account=None) -> "EVMLocker":
        return cls(account=account, contract_address=config.htlc3s_address,
                   rpc_url=config.evm_rpc_url, chain_id=config.evm_chain_id,
                   decimals=config.usdc_decimals)

    @property
    def web3(self) -> Web3:
        """Lazy-load web3 instance."""
        if self._web3 is None:
            self._web3 = Web3(Web3.HTTPProvider(self.rpc_url))
        return self._web3

    def _contract(self):
        return self.web3.eth.contract(
            address=Web3.to_checksum_address(self.contract_address),
            abi=HTLC3S_ABI
        )

    def _sign_and_send(self, tx: Dict, timeout: int):
        signed = self.account.sign_transaction(tx)
        tx_hash = self.web3.eth.send_raw_transaction(signed.raw_transaction)
        receipt = self.web3.eth.wait_for_transaction_receipt(tx_hash, timeout=timeout)
        return tx_hash, receipt

    def get_lock(self, htlc_id: str) -> Optional[LockInfo]:
        """Read an HTLC. None if it does not exist."""
        result = self._contract().functions.getHTLC(_hex32(htlc_id)).call()
        sender, recipient, token, amount, H_user, H_lp1, H_lp2, timelock, claimed, refunded = result
        if sender == ZERO_ADDRESS:
            return None
        if not htlc_id.startswith("0x"):
            htlc_id = "0x" + htlc_id
        return LockInfo(
            htlc_id=htlc_id,
            sender=sender,
            recipient=recipient,
            token=token,
            amount=amount / 10 ** self.decimals,
            H_user=H_user.hex(),
            H_lp1=H_lp1.hex(),
            H_lp2=H_lp2.hex(),
            timelock=timelock,
            claimed=claimed,
            refunded=refunded,
        )

    def create_lock(self, recipient: str, amount: float, H_user: str, H_lp1: str,
                    H_lp2: str, timelock_seconds: int,
                    token: str = USDC_CONTRACT_ADDRESS) -> LockResult:
        """Approve (if needed) and create the user's USDC HTLC."""
        if self.account is None:
            return LockResult(success=False, error="No EVM account configured")

        w3 = self.web3
        sender = self.account.address
        contract_address = Web3.to_checksum_address(self.contract_address)
        amount_units = int(round(amount * 10 ** self.decimals))
        timelock = int(time.time()) + timelock_seconds

        try:
            usdc = w3.eth.contract(address=Web3.to_checksum_address(token), abi=ERC20_ABI)
            allowance = usdc.functions.allowance(sender, contract_address).call()

            if allowance < amount_units:
                log.info(f"Approving USDC spending...")
                approve_tx = usdc.functions.approve(contract_address, amount_units).build_transaction({
                    'from': sender,
                    'nonce': w3.eth.get_transaction_count(sender, 'pending'),
                    'gas': 100000,
                    'gasPrice': int(w3.eth.gas_price * 1.1),
                    'chainId': self.chain_id
                })
                _, receipt = self._sign_and_send(approve_tx, timeout=60)
                if receipt['status'] != 1:
                    return LockResult(success=False, error="Approval failed")

            log.info(f"Creating 3S HTLC: {amount} USDC to {recipient[:10]}...")
            create_tx = self._contract().functions.create(
                Web3.to_checksum_address(recipient),
                Web3.to_checksum_address(token),
                amount_units,
                _hex32(H_user),
                _hex32(H_lp1),
                _hex32(H_lp2),
                timelock
            ).build_transaction({
                'from': sender,
                'nonce': w3.eth.get_transaction_count(sender, 'pending'),
                'gas': 350000,
                'gasPrice': int(w3.eth.gas_price * 1.1),
                'chainId': self.chain_id
            })
            tx_hash, receipt = self._sign_and_send(create_tx, timeout=120)
        except ContractLogicError as e:
            return LockResult(success=False, error=f"Contract rejected lock: {e}")
        except ValueError as e:
            declined = any(m in str(e).lower() for m in _DECLINE_MARKERS)
            return LockResult(success=False, error=str(e), declined=declined)

        if receipt['status'] != 1:
            return LockResult(success=False, error="Create failed", tx_hash=tx_hash.hex())

        # htlcId is the first indexed topic of the contract's event
        contract_lower = self.contract_address.lower()
        for entry in receipt['logs']:
            if entry['address'].lower() == contract_lower and len(entry['topics']) >= 2:
                topic = entry['topics'][1]
                htlc_id = topic.hex() if hasattr(topic, 'hex') else topic
                if not htlc_id.startswith("0x"):
                    htlc_id = "0x" + htlc_id
                log.info(f"USDC HTLC created: {htlc_id[:18]}... tx {tx_hash.hex()}")
                return LockResult(success=True, htlc_id=htlc_id, tx_hash=tx_hash.hex())

        return LockResult(success=False, error="Could not extract htlcId", tx_hash=tx_hash.hex())
