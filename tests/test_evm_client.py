import unittest
from dataclasses import replace
from unittest import mock

import aiohttp
from web3 import Web3
from web3.exceptions import ContractLogicError, TimeExhausted

from fakes import DESTINATION, SIGNING_KEY
from sanstools.configuration.configuration import BASE_TESTNET
from sanstools.models.models import TransferFailure
from sanstools.payout.evm_client import EVMChainClient, classify_transfer_error
from sanstools.utilities.exceptions import ConfigurationError, TransferError

TOKEN = "0x00Ef6220B7e28E890a5A265D82589e072564Cc57"
NETWORK = replace(BASE_TESTNET, token_address=TOKEN)

def rpc_status_error(status: int = 429, message: str = "Too Many Requests") -> aiohttp.ClientResponseError:
    return aiohttp.ClientResponseError(mock.Mock(real_url="https://sepolia.base.org"), (), status=status, message=message)

def unsigned_transfer(nonce: int) -> dict:
    return {
        'to': Web3.to_checksum_address(TOKEN),
        'value': 0,
        'gas': 60000,
        'maxFeePerGas': 2_000_000_000,
        'maxPriorityFeePerGas': 1_000_000_000,
        'nonce': nonce,
        'chainId': NETWORK.chain_id,
        'data': '0xa9059cbb',
    }

class TestClassifyTransferError(unittest.TestCase):

    def test_mapping(self):
        cases = [
            (ValueError({'code': -32000, 'message': 'insufficient funds for gas * price + value'}), TransferFailure.INSUFFICIENT_FUNDS),
            (ContractLogicError("execution reverted: ERC20: transfer amount exceeds balance"), TransferFailure.INSUFFICIENT_FUNDS),
            (ValueError({'code': -32000, 'message': 'nonce too low'}), TransferFailure.NONCE_CONFLICT),
            (ValueError("already known"), TransferFailure.NONCE_CONFLICT),
            (ConnectionError("Connection refused"), TransferFailure.NETWORK_ERROR),
            (TimeExhausted("not in chain after 120 seconds"), TransferFailure.NETWORK_ERROR),
            (rpc_status_error(), TransferFailure.NETWORK_ERROR),
            (rpc_status_error(502, "Bad Gateway"), TransferFailure.NETWORK_ERROR),
            (aiohttp.ServerDisconnectedError(), TransferFailure.NETWORK_ERROR),
            (ContractLogicError("execution reverted"), TransferFailure.REJECTED_BY_CHAIN),
            (TransferError(TransferFailure.NONCE_CONFLICT, "x"), TransferFailure.NONCE_CONFLICT),
        ]
        for error, expected in cases:
            with self.subTest(error=error):
                self.assertEqual(classify_transfer_error(error), expected)

class TestEVMChainClient(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.w3 = mock.MagicMock()
        self.w3.eth.get_transaction_count = mock.AsyncMock(return_value=12)
        self.w3.eth.send_raw_transaction = mock.AsyncMock(return_value=b'\x12' * 32)
        self.transfer_call = self.w3.eth.contract.return_value.functions.transfer.return_value
        self.transfer_call.build_transaction = mock.AsyncMock(side_effect=lambda params: unsigned_transfer(params['nonce']))

    def make_client(self, **kwargs):
        return EVMChainClient(NETWORK, SIGNING_KEY, w3=self.w3, **kwargs)

    def test_requires_token_address(self):
        with self.assertRaises(ConfigurationError):
            EVMChainClient(BASE_TESTNET, SIGNING_KEY, w3=self.w3)

    def test_to_base_units(self):
        self.assertEqual(self.make_client().to_base_units(10), 10 * 10 ** 18)

    async def test_pending_nonce(self):
        client = self.make_client()
        self.assertEqual(await client.get_transaction_count(client.sender_address), 12)
        self.assertEqual(self.w3.eth.get_transaction_count.await_args.args[1], 'pending')

    async def test_nonce_lookup_failure_is_network_error(self):
        self.w3.eth.get_transaction_count.side_effect = ConnectionError("rpc unreachable")
        client = self.make_client()

        with self.assertRaises(TransferError) as ctx:
            await client.get_transaction_count(client.sender_address)
        self.assertEqual(ctx.exception.kind, TransferFailure.NETWORK_ERROR)

    async def test_submit_transfer_signs_with_given_nonce(self):
        client = self.make_client()

        tx_hash = await client.submit_transfer(DESTINATION, 10, nonce=5)

        self.assertEqual(tx_hash, "0x" + "12" * 32)
        to, amount = self.w3.eth.contract.return_value.functions.transfer.call_args.args
        self.assertEqual(to, Web3.to_checksum_address(DESTINATION))
        self.assertEqual(amount, 10 * 10 ** 18)
        params = self.transfer_call.build_transaction.await_args.args[0]
        self.assertEqual(params['nonce'], 5)
        self.assertEqual(params['chainId'], 84532)
        self.assertEqual(params['from'], client.sender_address)
        self.w3.eth.send_raw_transaction.assert_awaited_once()

    async def test_submit_failure_is_classified(self):
        self.w3.eth.send_raw_transaction.side_effect = ValueError(
            {'code': -32000, 'message': 'insufficient funds for gas * price + value'}
        )
        with self.assertRaises(TransferError) as ctx:
            await self.make_client().submit_transfer(DESTINATION, 10, nonce=0)
        self.assertEqual(ctx.exception.kind, TransferFailure.INSUFFICIENT_FUNDS)

    async def test_rpc_http_error_on_submit_is_network_error(self):
        self.w3.eth.send_raw_transaction.side_effect = rpc_status_error()
        with self.assertRaises(TransferError) as ctx:
            await self.make_client().submit_transfer(DESTINATION, 10, nonce=0)
        self.assertEqual(ctx.exception.kind, TransferFailure.NETWORK_ERROR)
        self.assertIn("429", ctx.exception.detail)

    async def test_unexpected_error_on_submit_is_still_a_transfer_error(self):
        self.transfer_call.build_transaction.side_effect = RuntimeError("provider state corrupted")
        with self.assertRaises(TransferError) as ctx:
            await self.make_client().submit_transfer(DESTINATION, 10, nonce=0)
        self.assertEqual(ctx.exception.kind, TransferFailure.REJECTED_BY_CHAIN)

    async def test_rpc_http_error_while_waiting_for_receipt(self):
        self.w3.eth.wait_for_transaction_receipt = mock.AsyncMock(side_effect=rpc_status_error(503, "Service Unavailable"))
        with self.assertRaises(TransferError) as ctx:
            await self.make_client(wait_for_receipt=True).submit_transfer(DESTINATION, 10, nonce=0)
        self.assertEqual(ctx.exception.kind, TransferFailure.NETWORK_ERROR)

    async def test_reverted_receipt_is_rejected_by_chain(self):
        self.w3.eth.wait_for_transaction_receipt = mock.AsyncMock(return_value={'status': 0})
        with self.assertRaises(TransferError) as ctx:
            await self.make_client(wait_for_receipt=True).submit_transfer(DESTINATION, 10, nonce=0)
        self.assertEqual(ctx.exception.kind, TransferFailure.REJECTED_BY_CHAIN)

    async def test_confirmed_receipt(self):
        self.w3.eth.wait_for_transaction_receipt = mock.AsyncMock(return_value={'status': 1})
        tx_hash = await self.make_client(wait_for_receipt=True).submit_transfer(DESTINATION, 10, nonce=0)
        self.w3.eth.wait_for_transaction_receipt.assert_awaited_once_with(tx_hash, timeout=120)

if __name__ == '__main__':
    unittest.main()
