"""
Token transfers on an EVM chain through web3.py.

Only submits and (optionally) waits; nonce bookkeeping belongs to the payout engine.
"""
# Standard imports
from typing import Optional
import asyncio
import traceback

# Third party imports
import aiohttp
from eth_account import Account
from loguru import logger
from web3 import AsyncWeb3, Web3
from web3.exceptions import TimeExhausted

# SansTools imports
from sanstools.configuration.configuration import NetworkConfig
from sanstools.configuration.constants import ERC20_TRANSFER_ABI, RECEIPT_TIMEOUT
from sanstools.models.models import TransferFailure
from sanstools.utilities.credentials import normalize_private_key
from sanstools.utilities.exceptions import ConfigurationError, TransferError

INSUFFICIENT_FUNDS_MARKERS = ("insufficient funds", "transfer amount exceeds balance", "exceeds balance")
NONCE_CONFLICT_MARKERS = ("nonce too low", "already known", "replacement transaction underpriced", "nonce too high")

def classify_transfer_error(error: BaseException) -> TransferFailure:
    """Map a web3/provider exception onto the transfer failure taxonomy"""
    if isinstance(error, TransferError):
        return error.kind
    message = str(error).lower()
    if any(marker in message for marker in INSUFFICIENT_FUNDS_MARKERS):
        return TransferFailure.INSUFFICIENT_FUNDS
    if any(marker in message for marker in NONCE_CONFLICT_MARKERS):
        return TransferFailure.NONCE_CONFLICT
    if isinstance(error, (aiohttp.ClientError, TimeoutError, asyncio.TimeoutError, OSError, TimeExhausted)):
        return TransferFailure.NETWORK_ERROR
    if "connection" in message or "timed out" in message:
        return TransferFailure.NETWORK_ERROR
    return TransferFailure.REJECTED_BY_CHAIN

class EVMChainClient:
    """Submits ERC-20 transfers of the reward token from the node's signing account"""

    def __init__(
            self,
            network_config: NetworkConfig,
            signing_key: str,
            w3: Optional[AsyncWeb3] = None,
            wait_for_receipt: bool = False,
            receipt_timeout: float = RECEIPT_TIMEOUT
        ):
        if not network_config.token_address:
            raise ConfigurationError(f"No token address configured for {network_config.name}")

        self.network_config = network_config
        self.account = Account.from_key(normalize_private_key(signing_key))
        self.w3 = w3 or AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(network_config.rpc_url))
        self.token = self.w3.eth.contract(
            address=Web3.to_checksum_address(network_config.token_address),
            abi=ERC20_TRANSFER_ABI
        )
        self.wait_for_receipt = wait_for_receipt
        self.receipt_timeout = receipt_timeout
        logger.debug(
            f"EVMChainClient: Using {network_config.name} ({network_config.rpc_url}) "
            f"with sender {self.account.address}"
        )

    @property
    def sender_address(self) -> str:
        return self.account.address

    def to_base_units(self, amount: int) -> int:
        return int(amount) * 10 ** self.network_config.token_decimals

    async def get_transaction_count(self, address: str) -> int:
        try:
            return await self.w3.eth.get_transaction_count(Web3.to_checksum_address(address), 'pending')
        except Exception as e:
            logger.error(f"EVMChainClient.get_transaction_count: Failed for {address}: {e}")
            raise TransferError(TransferFailure.NETWORK_ERROR, str(e)) from e

    async def submit_transfer(self, destination: str, amount: int, nonce: int) -> str:
        """Sign and send `amount` whole tokens to `destination` using `nonce`"""
        try:
            tx = await self.token.functions.transfer(
                Web3.to_checksum_address(destination),
                self.to_base_units(amount)
            ).build_transaction({
                'from': self.account.address,
                'nonce': nonce,
                'chainId': self.network_config.chain_id,
            })
            signed = self.account.sign_transaction(tx)
            tx_hash = Web3.to_hex(await self.w3.eth.send_raw_transaction(signed.raw_transaction))
        except Exception as e:
            kind = classify_transfer_error(e)
            logger.error(f"EVMChainClient.submit_transfer: Transfer with nonce {nonce} failed ({kind.value}): {e}")
            logger.debug(traceback.format_exc())
            raise TransferError(kind, str(e)) from e

        logger.debug(f"EVMChainClient.submit_transfer: Sent {amount} {self.network_config.token_symbol} to {destination} in {tx_hash}")

        if self.wait_for_receipt:
            await self._confirm(tx_hash)
        return tx_hash

    async def _confirm(self, tx_hash: str):
        try:
            receipt = await self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.receipt_timeout)
        except Exception as e:
            raise TransferError(classify_transfer_error(e), f"{tx_hash}: {e}") from e
        if receipt['status'] != 1:
            raise TransferError(TransferFailure.REJECTED_BY_CHAIN, f"{tx_hash} reverted")

    async def close(self):
        """Release the provider's HTTP session"""
        disconnect = getattr(self.w3.provider, 'disconnect', None)
        if disconnect is not None:
            await disconnect()
