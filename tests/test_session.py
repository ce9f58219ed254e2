#!/usr/bin/env python3
"""
Session store: persistence of the in-flight swap and S_user.

Usage:
    python -m pytest tests/test_session.py
"""

import json
import os
import stat
import sys
import tempfile
import unittest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from pna_swap.core import Swap, SwapDirection, SwapState, generate_secret
from pna_swap.swap.session import SessionStore


def _swap(**overrides):
    fields = dict(
        swap_id="fs_1", direction=SwapDirection.FORWARD,
        from_asset="BTC", to_asset="USDC", from_amount=0.01, to_amount=500.0,
        dest_address="0x" + "ab" * 20, lp_endpoint="http://lpa.test",
        state=SwapState.DEPOSIT_DETECTED,
    )
    fields.update(overrides)
    return Swap(**fields)


class TestSessionStore(unittest.TestCase):

    def setUp(self):
        self.dir = tempfile.mkdtemp()
        self.path = os.path.join(self.dir, "nested", "swap_session.json")
        self.now = [1_700_000_000.0]
        self.store = SessionStore(self.path, expiry=7200, clock=lambda: self.now[0])
        self.S_user, self.H_user = generate_secret()

    def test_save_and_load(self):
        swap = _swap(H_user=self.H_user, is_perleg=True, swap_id_out="fs_out",
                     rail_locked_notified=True)
        self.store.save(swap, self.S_user, swap.lp_endpoint)
        session = self.store.load()
        self.assertIsNotNone(session)
        self.assertEqual(session.S_user, self.S_user)
        self.assertEqual(session.swap.S_user, self.S_user)
        self.assertEqual(session.swap.state, SwapState.DEPOSIT_DETECTED)
        self.assertTrue(session.swap.rail_locked_notified)
        self.assertEqual(session.lp_url, "http://lpa.test")

    def test_owner_only_permissions(self):
        self.store.save(_swap(), self.S_user, "http://lpa.test")
        mode = stat.S_IMODE(os.stat(self.path).st_mode)
        self.assertEqual(mode, 0o600)

    def test_file_layout(self):
        """S_user is stored once, at top level, never inside the swap record."""
        self.store.save(_swap(S_user=self.S_user), self.S_user, "http://lpa.test")
        with open(self.path) as f:
            record = json.load(f)
        self.assertEqual(set(record), {"S_user", "swap", "lp_url", "ts"})
        self.assertNotIn("S_user", record["swap"])
        self.assertEqual(record["ts"], self.now[0])

    def test_expired_session_discarded(self):
        self.store.save(_swap(), self.S_user, "http://lpa.test")
        self.now[0] += 7201
        self.assertIsNone(self.store.load())
        self.assertFalse(os.path.exists(self.path))

    def test_session_within_expiry_kept(self):
        self.store.save(_swap(), self.S_user, "http://lpa.test")
        self.now[0] += 7199
        self.assertIsNotNone(self.store.load())

    def test_missing_secret_discarded(self):
        self.store.save(_swap(), "", "http://lpa.test")
        self.assertIsNone(self.store.load())
        self.assertFalse(os.path.exists(self.path))

    def test_missing_swap_id_discarded(self):
        self.store.save(_swap(swap_id=""), self.S_user, "http://lpa.test")
        self.assertIsNone(self.store.load())

    def test_corrupt_file_discarded(self):
        os.makedirs(os.path.dirname(self.path), exist_ok=True)
        with open(self.path, "w") as f:
            f.write("{not json")
        self.assertIsNone(self.store.load())
        self.assertFalse(os.path.exists(self.path))

    def test_clear_is_idempotent(self):
        self.store.clear()
        self.store.save(_swap(), self.S_user, "http://lpa.test")
        self.store.clear()
        self.store.clear()
        self.assertIsNone(self.store.load())


if __name__ == "__main__":
    unittest.main(verbosity=2)
