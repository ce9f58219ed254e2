"""
Verification gate before S_user is disclosed.

At COUNTERPARTY_LOCKED the LP claims its HTLCs are on-chain. Before the user's
secret leaves the client we check what we can see: the three hash
commitments, a lock reference, and the locked amount against the quote.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional, List

from ..core import Swap, SwapDirection, LOCK_AMOUNT_TOLERANCE, sats_to_btc
from ..schemas.v1 import SwapStatusResponse

log = logging.getLogger(__name__)


@dataclass
class LockVerification:
    H_user: str
    H_lp1: str
    H_lp2: str
    lock_reference: Optional[str]
    expected_amount: float
    locked_amount: float
    asset: str
    warnings: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.warnings

    @property
    def amount_deviation(self) -> float:
        """Relative deviation; nothing locked counts as 100%."""
        if self.expected_amount <= 0:
            return 0.0
        if self.locked_amount <= 0:
            return 1.0
        return abs(self.locked_amount - self.expected_amount) / self.expected_amount

    def summary(self) -> str:
        lines = [
            f"H_user: {self.H_user[:16]}..." if self.H_user else "H_user: missing",
            f"H_lp1:  {self.H_lp1[:16]}..." if self.H_lp1 else "H_lp1:  missing",
            f"H_lp2:  {self.H_lp2[:16]}..." if self.H_lp2 else "H_lp2:  missing",
            f"Lock:   {self.lock_reference or 'missing'}",
            f"Amount: {self.locked_amount} {self.asset} (quoted {self.expected_amount})",
        ]
        lines.extend(f"WARNING: {w}" for w in self.warnings)
        return "\n".join(lines)


def verify_counterparty_lock(swap: Swap, status: SwapStatusResponse,
                             locked_amount: Optional[float] = None) -> LockVerification:
    """Check the LP's lock against the swap plan.

    locked_amount, when given, is the amount read back from the LP's HTLC (or
    from LP_OUT on per-leg swaps) and takes precedence over the status.
    A missing or zero amount is a warning, never a pass.
    """
    H_user = status.hashlocks.H_user or swap.H_user
    H_lp1 = status.hashlocks.H_lp1 or swap.H_lp1
    H_lp2 = status.hashlocks.H_lp2 or swap.H_lp2

    if swap.direction == SwapDirection.FORWARD:
        lock_reference = (status.evm.lock_txhash or status.evm.htlc_id
                          or swap.evm_lock_txhash or swap.evm_htlc_id)
        locked = status.usdc_amount
    else:
        lock_reference = status.btc.fund_txid or status.btc.htlc_address or None
        locked = sats_to_btc(status.btc_amount_sats) if status.btc_amount_sats else 0.0
    if locked_amount is not None:
        locked = locked_amount

    result = LockVerification(
        H_user=H_user,
        H_lp1=H_lp1,
        H_lp2=H_lp2,
        lock_reference=lock_reference,
        expected_amount=swap.to_amount,
        locked_amount=locked,
        asset=swap.to_asset,
    )

    if swap.H_user and H_user and H_user.lower() != swap.H_user.lower():
        result.warnings.append("H_user does not match the hash of your secret")
    for name, value in (("H_user", H_user), ("H_lp1", H_lp1), ("H_lp2", H_lp2)):
        if not value:
            result.warnings.append(f"{name} missing")
    if not lock_reference:
        result.warnings.append("No lock transaction reference from LP")
    if locked <= 0:
        result.warnings.append(f"No locked {swap.to_asset} amount reported")
    elif result.amount_deviation > LOCK_AMOUNT_TOLERANCE:
        result.warnings.append(
            f"Locked amount {locked} {swap.to_asset} deviates "
            f"{result.amount_deviation * 100:.2f}% from quoted {swap.to_amount}")

    if result.warnings:
        log.warning(f"Lock verification for {swap.swap_id}: {len(result.warnings)} warning(s)")
    return result
