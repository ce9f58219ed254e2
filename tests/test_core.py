#!/usr/bin/env python3
"""
Core types, error taxonomy and destination checks.

Usage:
    python -m pytest tests/test_core.py
"""

import os
import sys
import hashlib
import unittest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from web3 import Web3

from pna_swap.core import (
    SwapState, SwapDirection, Swap, map_wire_state,
    generate_secret, verify_preimage, sats_to_btc, btc_to_sats,
)
from pna_swap.errors import (
    SwapError, BusinessRejection, RejectionReason, CoordinationError,
    NO_FUNDS_NOTE, FUNDS_COMMITTED_NOTE,
)
from pna_swap.chains.address import (
    validate_destination, is_valid_btc_address, is_valid_evm_address,
)


class TestStateLattice(unittest.TestCase):

    def test_wire_states_map_onto_lattice(self):
        """Forward, reverse and per-leg wire states share one lattice."""
        self.assertEqual(map_wire_state("awaiting_btc"), SwapState.AWAITING_DEPOSIT)
        self.assertEqual(map_wire_state("awaiting_usdc"), SwapState.AWAITING_DEPOSIT)
        self.assertEqual(map_wire_state("awaiting_m1"), SwapState.AWAITING_DEPOSIT)
        self.assertEqual(map_wire_state("btc_funded"), SwapState.DEPOSIT_DETECTED)
        self.assertEqual(map_wire_state("usdc_funded"), SwapState.DEPOSIT_DETECTED)
        self.assertEqual(map_wire_state("m1_locked"), SwapState.RAIL_LOCKED)
        self.assertEqual(map_wire_state("lp_locked"), SwapState.COUNTERPARTY_LOCKED)
        self.assertEqual(map_wire_state("btc_claimed"), SwapState.PRIMARY_CLAIMED)
        self.assertEqual(map_wire_state("COMPLETED"), SwapState.COMPLETED)

    def test_unknown_wire_state(self):
        self.assertIsNone(map_wire_state("teleported"))
        self.assertIsNone(map_wire_state(""))

    def test_rank_is_monotonic_along_main_path(self):
        path = [
            SwapState.AWAITING_DEPOSIT, SwapState.DEPOSIT_DETECTED, SwapState.RAIL_LOCKED,
            SwapState.COUNTERPARTY_LOCKED, SwapState.PRIMARY_CLAIMED, SwapState.COMPLETING,
            SwapState.COMPLETED,
        ]
        ranks = [s.rank for s in path]
        self.assertEqual(ranks, sorted(ranks))
        self.assertEqual(len(set(ranks)), len(ranks))

    def test_terminal_states_share_top_rank(self):
        self.assertEqual(SwapState.FAILED.rank, SwapState.EXPIRED.rank)
        self.assertEqual(SwapState.FAILED.rank, SwapState.REFUNDED.rank)
        for state in (SwapState.COMPLETED, SwapState.FAILED, SwapState.EXPIRED,
                      SwapState.REFUNDED):
            self.assertTrue(state.is_terminal)
        self.assertFalse(SwapState.COMPLETING.is_terminal)

    def test_pre_lock_states(self):
        self.assertTrue(SwapState.AWAITING_DEPOSIT.is_pre_lock)
        self.assertTrue(SwapState.DEPOSIT_DETECTED.is_pre_lock)
        self.assertFalse(SwapState.RAIL_LOCKED.is_pre_lock)
        self.assertFalse(SwapState.COUNTERPARTY_LOCKED.is_pre_lock)


class TestSecrets(unittest.TestCase):

    def test_generate_secret(self):
        """Hashlock is SHA256 of the 32-byte secret."""
        secret, hashlock = generate_secret()
        self.assertEqual(len(secret), 64)
        self.assertEqual(hashlib.sha256(bytes.fromhex(secret)).hexdigest(), hashlock)

    def test_verify_preimage(self):
        secret, hashlock = generate_secret()
        self.assertTrue(verify_preimage(secret, hashlock))
        self.assertTrue(verify_preimage("0x" + secret, "0x" + hashlock))
        self.assertFalse(verify_preimage(generate_secret()[0], hashlock))
        self.assertFalse(verify_preimage("not hex", hashlock))

    def test_sats_conversion(self):
        self.assertEqual(btc_to_sats(0.01), 1_000_000)
        self.assertEqual(sats_to_btc(1_000_000), 0.01)


class TestSwapRecord(unittest.TestCase):

    def _swap(self):
        return Swap(
            swap_id="fs_1", direction=SwapDirection.FORWARD,
            from_asset="BTC", to_asset="USDC", from_amount=0.01, to_amount=500.0,
            dest_address="0x" + "ab" * 20, lp_endpoint="http://lp.test",
            state=SwapState.DEPOSIT_DETECTED, S_user="aa" * 32,
        )

    def test_secret_not_serialized(self):
        """to_dict() never carries S_user."""
        data = self._swap().to_dict()
        self.assertNotIn("S_user", data)
        self.assertEqual(data["state"], "deposit_detected")
        self.assertEqual(data["direction"], "forward")

    def test_from_dict_ignores_unknown_fields(self):
        data = self._swap().to_dict()
        data["legacy_field"] = 1
        swap = Swap.from_dict(data)
        self.assertEqual(swap.state, SwapState.DEPOSIT_DETECTED)
        self.assertIsNone(swap.S_user)

    def test_secret_hidden_from_repr(self):
        self.assertNotIn("aa" * 32, repr(self._swap()))


class TestErrors(unittest.TestCase):

    def test_below_minimum(self):
        e = BusinessRejection.from_detail("Amount below minimum: 0.0001 BTC", 400)
        self.assertEqual(e.reason, RejectionReason.BELOW_MINIMUM)
        self.assertEqual(e.limit, 0.0001)
        self.assertEqual(e.status_code, 400)

    def test_above_maximum(self):
        e = BusinessRejection.from_detail("Amount above maximum: 0.5 BTC")
        self.assertEqual(e.reason, RejectionReason.ABOVE_MAXIMUM)
        self.assertEqual(e.limit, 0.5)

    def test_inventory(self):
        e = BusinessRejection.from_detail("Insufficient USDC inventory")
        self.assertEqual(e.reason, RejectionReason.INSUFFICIENT_INVENTORY)

    def test_message_kept_verbatim(self):
        e = BusinessRejection.from_detail("Pair not supported")
        self.assertEqual(e.reason, RejectionReason.OTHER)
        self.assertEqual(e.message, "Pair not supported")

    def test_safety_note(self):
        """Every error says whether funds are committed."""
        self.assertIn(NO_FUNDS_NOTE, SwapError("quote failed").user_message())
        e = CoordinationError("LP_OUT rejected", step="m1-locked")
        self.assertTrue(e.funds_committed)
        self.assertIn(FUNDS_COMMITTED_NOTE, e.user_message())


class TestDestination(unittest.TestCase):

    def test_evm_address(self):
        lower = "0x" + "ab" * 20
        checksummed = Web3.to_checksum_address(lower)
        self.assertTrue(is_valid_evm_address(lower))
        self.assertTrue(is_valid_evm_address(checksummed))
        self.assertEqual(validate_destination("USDC", lower), checksummed)

    def test_bad_evm_checksum(self):
        checksummed = Web3.to_checksum_address("0x" + "ab" * 20)
        i = next(i for i, c in enumerate(checksummed) if i > 1 and c.isalpha())
        broken = checksummed[:i] + checksummed[i].swapcase() + checksummed[i + 1:]
        self.assertFalse(is_valid_evm_address(broken))
        with self.assertRaises(ValueError):
            validate_destination("USDC", broken)

    def test_btc_address(self):
        self.assertTrue(is_valid_btc_address("bc1qw508d6qejxtdg4y5r3zarvary0c5xw7kv8f3t4"))
        self.assertTrue(is_valid_btc_address("tb1qw508d6qejxtdg4y5r3zarvary0c5xw7kxpjzsx"))
        self.assertFalse(is_valid_btc_address("tb1qw508d6qejxtdg4y5r3zarvary0c5xw7kxpjzsy"))
        self.assertFalse(is_valid_btc_address("0x" + "ab" * 20))

    def test_btc_network_prefix(self):
        addr = "tb1qw508d6qejxtdg4y5r3zarvary0c5xw7kxpjzsx"
        self.assertTrue(is_valid_btc_address(addr, hrp="tb"))
        self.assertFalse(is_valid_btc_address(addr, hrp="bc"))

    def test_missing_destination(self):
        with self.assertRaises(ValueError):
            validate_destination("BTC", "")


if __name__ == "__main__":
    unittest.main(verbosity=2)
