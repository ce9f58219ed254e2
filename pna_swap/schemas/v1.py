"""
LP API payload schemas, version 1.

Mirrors the LP server's response models. Unknown fields are ignored so that
LPs can add fields without breaking older clients; missing required fields
fail validation and surface as SchemaError.
"""

from typing import Optional, Dict, Any, List, Union

from pydantic import BaseModel, ConfigDict, Field


SCHEMA_VERSION = 1


class _Payload(BaseModel):
    model_config = ConfigDict(extra="ignore")


# =============================================================================
# LP info and quotes
# =============================================================================

class LPInfoResponse(_Payload):
    lp_id: str
    name: str = ""
    version: str = ""
    test_mode: bool = False
    pairs: Dict[str, Any] = {}
    confirmations: Dict[str, Any] = {}
    inventory: Dict[str, Any] = {}
    timestamp: int = 0


class QuoteResponse(_Payload):
    lp_id: str
    lp_name: str
    from_asset: str
    to_asset: str
    from_amount: float
    to_amount: float
    rate: float                      # Effective rate after spread
    rate_market: float = 0.0         # Market rate before spread
    spread_percent: float = 0.0
    route: str = ""
    settlement_time_seconds: int = 0
    settlement_time_human: str = ""
    confirmations_required: int = 0
    confirmations_breakdown: Dict[str, Any] = {}
    valid_until: int = 0
    inventory_ok: Optional[bool] = None
    min_amount: float = 0.0
    max_amount: float = 0.0


class LegQuoteResponse(_Payload):
    """Quote for a single leg (X→M1 or M1→Y)."""
    lp_id: str
    lp_name: str
    leg: str                         # e.g. "BTC/M1" or "M1/USDC"
    from_asset: str
    to_asset: str
    from_amount: float
    to_amount: float
    rate: float
    spread_percent: float = 0.0
    inventory_ok: Optional[bool] = None
    settlement_time_seconds: int = 0
    settlement_time_human: str = ""
    min_amount: float = 0.0
    max_amount: float = 0.0


# =============================================================================
# Swap initiation
# =============================================================================

class Hashlocks(_Payload):
    H_user: str = ""
    H_lp1: str = ""
    H_lp2: str = ""


class BtcDeposit(_Payload):
    address: str
    amount_sats: int
    amount_btc: Union[str, float] = ""
    timelock_blocks: int = 0
    instant_min_feerate: float = 0.0


class UsdcOutput(_Payload):
    amount: float
    recipient: str = ""


class UsdcDeposit(_Payload):
    amount: float
    contract: str
    token: str
    recipient: str
    timelock_seconds: int


class BtcOutput(_Payload):
    amount_btc: float = 0.0
    amount_sats: int = 0
    destination: str = ""


class InitForwardResponse(_Payload):
    """BTC→USDC plan: user funds btc_deposit.address."""
    swap_id: str
    state: str
    btc_deposit: BtcDeposit
    usdc_output: UsdcOutput
    hashlocks: Hashlocks
    plan_expires_at: int = 0
    lp_id: str = ""
    lp_name: str = ""


class InitReverseResponse(_Payload):
    """USDC→BTC plan: user creates the USDC HTLC described by usdc_deposit."""
    swap_id: str
    state: str
    usdc_deposit: UsdcDeposit
    btc_output: BtcOutput
    hashlocks: Hashlocks
    plan_expires_at: int = 0
    lp_id: str = ""
    lp_name: str = ""


class LegOutInitResponse(_Payload):
    """Second leg (M1→USDC) plan from LP_OUT."""
    swap_id: str
    state: str
    H_lp2: str = Field(..., min_length=64, max_length=64)
    lp_m1_address: str
    usdc_output: UsdcOutput
    plan_expires_at: int = 0
    lp_id: str = ""
    lp_name: str = ""


class LegInInitResponse(_Payload):
    """First leg (BTC→M1) plan from LP_IN."""
    swap_id: str
    state: str
    H_lp1: str = Field(..., min_length=64, max_length=64)
    btc_deposit: BtcDeposit
    hashlocks: Hashlocks = Hashlocks()
    plan_expires_at: int = 0
    lp_id: str = ""
    lp_name: str = ""


# =============================================================================
# Status
# =============================================================================

class BtcStatus(_Payload):
    htlc_address: str = ""
    fund_txid: Optional[str] = None
    claim_txid: Optional[str] = None
    claim_confs: int = 0
    refund_txid: Optional[str] = None
    refund_address: str = ""


class M1Status(_Payload):
    htlc_outpoint: str = ""
    txid: Optional[str] = None
    claim_txid: Optional[str] = None


class EvmStatus(_Payload):
    htlc_id: str = ""
    lock_txhash: Optional[str] = None
    claim_txhash: Optional[str] = None


class RevealedSecrets(_Payload):
    S_lp1: str = ""
    S_lp2: str = ""


class SwapStatusResponse(_Payload):
    swap_id: str
    state: str
    from_asset: str = ""
    to_asset: str = ""
    btc_amount_sats: int = 0
    usdc_amount: float = 0.0
    hashlocks: Hashlocks = Hashlocks()
    btc: BtcStatus = BtcStatus()
    m1: M1Status = M1Status()
    evm: EvmStatus = EvmStatus()
    plan_expires_at: int = 0
    stability_check_until: Optional[int] = None
    error: Optional[str] = None
    secrets: Optional[RevealedSecrets] = None
    # Per-leg status responses report the M1 outpoint at top level
    m1_htlc_outpoint: str = ""

    @property
    def rail_outpoint(self) -> str:
        return self.m1.htlc_outpoint or self.m1_htlc_outpoint


# =============================================================================
# Step responses
# =============================================================================

class BtcFundedResponse(_Payload):
    swap_id: str = ""
    state: str
    confirmations: int = 0
    btc_fund_txid: Optional[str] = None


class UsdcFundedResponse(_Payload):
    swap_id: str = ""
    state: str


class PresignResponse(_Payload):
    swap_id: str = ""
    state: str
    btc_claim_txid: Optional[str] = None
    S_lp1: Optional[str] = None       # Per-leg: returned so the client can relay it


class RailLockedResponse(_Payload):
    swap_id: str = ""
    state: str
    evm_htlc_id: str = ""
    evm_lock_txhash: Optional[str] = None
    S_lp2: str = Field(..., min_length=64, max_length=64)


class StepResponse(_Payload):
    """deliver-secret / btc-claimed acknowledgement."""
    swap_id: str = ""
    state: str = ""


class SwapSummary(_Payload):
    swap_id: str
    state: str = Field("", alias="status")
    from_asset: str = ""
    to_asset: str = ""
    from_amount: float = 0.0
    to_amount: float = 0.0
    created_at: int = 0

    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class SwapListResponse(_Payload):
    swaps: List[SwapSummary] = []


# =============================================================================
# Registry
# =============================================================================

class RegistryEntry(_Payload):
    endpoint: str
    tier: int = 2                    # 1 = operator, 2 = community
    address: str = ""
    txid: str = ""
    height: int = 0
    status: str = "online"
    name: str = ""
    cached_info: Optional[Dict[str, Any]] = None


class RegistryResponse(_Payload):
    lps: List[RegistryEntry] = []
