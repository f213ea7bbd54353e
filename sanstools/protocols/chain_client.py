from typing import Protocol

class ChainClient(Protocol):
    """On-chain capabilities used by the payout engine"""

    @property
    def sender_address(self) -> str:
        """Address of the signing account"""
        ...

    async def get_transaction_count(self, address: str) -> int:
        """Authoritative next nonce for an address, pending transactions included"""
        ...

    async def submit_transfer(self, destination: str, amount: int, nonce: int) -> str:
        """
        Submit a token transfer of `amount` whole tokens using `nonce`.

        Returns:
            str: the transaction hash

        Raises:
            TransferError: carrying the TransferFailure kind
        """
        ...

    async def close(self) -> None:
        """Release any provider connections"""
        ...
