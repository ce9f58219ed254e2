#!/usr/bin/env python3
"""
EVM lock for USDC -> BTC swaps, against a mocked web3.

Usage:
    python -m pytest tests/test_evm.py
"""

import os
import sys
import unittest
from unittest.mock import MagicMock

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from pna_swap.chains.evm import EVMLocker, ZERO_ADDRESS
from pna_swap.config import ClientConfig, HTLC3S_CONTRACT_ADDRESS
from pna_swap.core import generate_secret


def _web3(htlc=None, allowance=0):
    w3 = MagicMock()
    contract = MagicMock()
    w3.eth.contract.return_value = contract
    contract.functions.getHTLC.return_value.call.return_value = htlc
    contract.functions.allowance.return_value.call.return_value = allowance
    return w3, contract


class TestGetLock(unittest.TestCase):

    def test_reads_lock(self):
        H = bytes.fromhex(generate_secret()[1])
        w3, _ = _web3(("0x" + "aa" * 20, "0x" + "bb" * 20, "0x" + "cc" * 20,
                       500_000_000, H, H, H, 2_000_000_000, False, False))
        locker = EVMLocker(web3=w3)
        info = locker.get_lock("11" * 32)
        self.assertEqual(info.htlc_id, "0x" + "11" * 32)
        self.assertEqual(info.amount, 500.0)
        self.assertEqual(info.H_user, H.hex())
        self.assertEqual(info.status, "active")

    def test_missing_lock(self):
        w3, _ = _web3((ZERO_ADDRESS, ZERO_ADDRESS, ZERO_ADDRESS, 0, b"\0" * 32, b"\0" * 32,
                       b"\0" * 32, 0, False, False))
        self.assertIsNone(EVMLocker(web3=w3).get_lock("0x" + "11" * 32))

    def test_claimed_status(self):
        w3, _ = _web3(("0x" + "aa" * 20, "0x" + "bb" * 20, "0x" + "cc" * 20,
                       1, b"\1" * 32, b"\1" * 32, b"\1" * 32, 0, True, False))
        self.assertEqual(EVMLocker(web3=w3).get_lock("0x" + "11" * 32).status, "claimed")


class TestCreateLock(unittest.TestCase):

    def setUp(self):
        _, self.H_user = generate_secret()
        _, self.H_lp1 = generate_secret()
        _, self.H_lp2 = generate_secret()

    def _create(self, locker):
        return locker.create_lock("0x" + "cd" * 20, 500.0, self.H_user, self.H_lp1,
                                  self.H_lp2, 3600)

    def test_no_account(self):
        result = self._create(EVMLocker(web3=MagicMock()))
        self.assertFalse(result.success)
        self.assertFalse(result.declined)

    def test_wallet_declined(self):
        w3, contract = _web3(allowance=0)
        contract.functions.allowance.return_value.call.side_effect = ValueError(
            "User rejected the request")
        account = MagicMock(address="0x" + "ab" * 20)
        result = self._create(EVMLocker(account=account, web3=w3))
        self.assertFalse(result.success)
        self.assertTrue(result.declined)

    def test_htlc_id_from_receipt(self):
        w3, contract = _web3(allowance=10 ** 12)
        w3.eth.send_raw_transaction.return_value = bytes.fromhex("44" * 32)
        w3.eth.wait_for_transaction_receipt.return_value = {
            "status": 1,
            "logs": [{"address": HTLC3S_CONTRACT_ADDRESS,
                      "topics": [bytes.fromhex("00" * 32), bytes.fromhex("33" * 32)]}],
        }
        w3.eth.gas_price = 1_000_000
        account = MagicMock(address="0x" + "ab" * 20)
        result = self._create(EVMLocker(account=account, web3=w3))
        self.assertTrue(result.success)
        self.assertEqual(result.htlc_id, "0x" + "33" * 32)
        contract.functions.approve.assert_not_called()
        args = contract.functions.create.call_args[0]
        self.assertEqual(args[2], 500_000_000)
        self.assertEqual(args[3], bytes.fromhex(self.H_user))

    def test_from_config(self):
        config = ClientConfig(evm_rpc_url="http://rpc.test", evm_chain_id=1)
        locker = EVMLocker.from_config(config)
        self.assertEqual(locker.rpc_url, "http://rpc.test")
        self.assertEqual(locker.chain_id, 1)
        self.assertEqual(locker.contract_address, HTLC3S_CONTRACT_ADDRESS)


if __name__ == "__main__":
    unittest.main(verbosity=2)
