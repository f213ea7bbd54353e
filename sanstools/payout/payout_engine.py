"""
Pays out unpaid detection records, one token transfer per record.

Ordering and nonce handling:
- Records are paid strictly in ascending detected_at order, one at a time.
- The pending nonce is fetched once per batch and incremented locally after each
  successful submission.
- After any failed submission the pending nonce is fetched again from the chain,
  so a failure that consumed its nonce and one that never left the client are both
  accounted for before the next transfer.
- Every success is written through to the ledger before the next transfer starts.
"""
# Standard imports
from typing import Optional, Callable, Awaitable, Any
from datetime import datetime
import asyncio
import re
import traceback

# Third party imports
from loguru import logger

# SansTools imports
from sanstools.configuration.configuration import RewardPolicy
from sanstools.configuration.constants import ETH_ADDRESS_PATTERN
from sanstools.ledger.detection_ledger import DetectionLedger
from sanstools.models.models import (
    DetectionRecord,
    PayoutSummary,
    TransferFailure,
    TransferOutcome,
    UserLedger,
    utcnow,
)
from sanstools.protocols.chain_client import ChainClient
from sanstools.utilities.credentials import normalize_private_key
from sanstools.utilities.exceptions import (
    InvalidAddressError,
    InvalidCredentialError,
    TransferError,
    UnauthorizedError,
)

ADDRESS_RE = re.compile(f"^{ETH_ADDRESS_PATTERN}$")

class PayoutEngine:

    def __init__(
            self,
            ledger: DetectionLedger,
            chain_client: ChainClient,
            signing_key: Optional[str],
            policy: RewardPolicy,
            clock: Callable[[], datetime] = utcnow,
            sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
        ):
        self.ledger = ledger
        self.chain_client = chain_client
        self.signing_key = signing_key
        self.policy = policy
        self.clock = clock
        self._sleep = sleep

    # PRECONDITIONS

    def _check_destination(self, destination_address: Optional[str]):
        if not destination_address or not ADDRESS_RE.match(destination_address):
            raise InvalidAddressError(destination_address)

    def _check_credential(self):
        normalize_private_key(self.signing_key)

    @staticmethod
    def _check_ownership(ledger: UserLedger, user_id: str, claimant_id: str):
        if ledger.user_id != user_id:
            # Stored ledger does not belong to the key it was fetched under
            raise UnauthorizedError(claimant_id, ledger.user_id)
        if claimant_id != ledger.user_id:
            raise UnauthorizedError(claimant_id, ledger.user_id)

    async def _check_preconditions(
            self,
            user_id: str,
            destination_address: Optional[str],
            claimant_id: Optional[str]
        ) -> UserLedger:
        """Validate everything that must hold before any transfer. Returns the loaded ledger."""
        self._check_destination(destination_address)
        try:
            self._check_credential()
        except InvalidCredentialError:
            logger.error("PayoutEngine._check_preconditions: Signing key is missing or malformed")
            raise
        ledger = await self.ledger.get_ledger(user_id)
        self._check_ownership(ledger, user_id, claimant_id if claimant_id is not None else user_id)
        return ledger

    # TRANSFERS

    async def _refetch_nonce(self) -> int:
        return await self.chain_client.get_transaction_count(self.chain_client.sender_address)

    async def _settle(self, user_id: str, record: DetectionRecord, tx_id: str, destination_address: str):
        """Mark a record paid and write it through to the ledger"""
        record.mark_paid(tx_id=tx_id, paid_at=self.clock(), address=destination_address)
        await self.ledger.mark_paid(user_id, record)

    async def payout(
            self,
            user_id: str,
            destination_address: str,
            claimant_id: Optional[str] = None
        ) -> PayoutSummary:
        """Pay every unpaid record of a user to destination_address

        Raises:
            PayoutPreconditionError: before any transfer, if the address, signing key
                or ownership check fails
        """
        async with self.ledger.user_lock(user_id):
            ledger = await self._check_preconditions(user_id, destination_address, claimant_id)
            unpaid = ledger.unpaid()
            summary = PayoutSummary()

            if not unpaid:
                logger.info(f"PayoutEngine.payout: No unpaid records for {user_id}")
                return summary

            logger.info(f"PayoutEngine.payout: Paying {len(unpaid)} records for {user_id} to {destination_address}")

            try:
                nonce: Optional[int] = await self._refetch_nonce()
            except TransferError as e:
                logger.error(f"PayoutEngine.payout: Could not fetch nonce, no transfers attempted: {e}")
                nonce = None

            for record in unpaid:
                if nonce is None:
                    summary.failed_count += 1
                    summary.outcomes.append(TransferOutcome.failed(
                        record.record_id, None, TransferFailure.NETWORK_ERROR, "nonce unavailable"
                    ))
                    continue

                outcome = await self._transfer(user_id, record, destination_address, nonce)
                summary.outcomes.append(outcome)

                if outcome.succeeded:
                    summary.paid_count += 1
                    summary.paid_amount += record.reward_amount
                    nonce += 1
                    continue

                summary.failed_count += 1
                try:
                    refetched = await self._refetch_nonce()
                    logger.debug(f"PayoutEngine.payout: Nonce after failed transfer: {nonce} -> {refetched}")
                    nonce = refetched
                except TransferError as e:
                    logger.error(f"PayoutEngine.payout: Could not reconcile nonce, halting transfers: {e}")
                    nonce = None

        logger.info(
            f"PayoutEngine.payout: {user_id} paid {summary.paid_count} records "
            f"({summary.paid_amount} tokens), {summary.failed_count} failed"
        )
        return summary

    async def _transfer(
            self,
            user_id: str,
            record: DetectionRecord,
            destination_address: str,
            nonce: int
        ) -> TransferOutcome:
        try:
            tx_id = await self.chain_client.submit_transfer(destination_address, record.reward_amount, nonce)
        except TransferError as e:
            logger.warning(
                f"PayoutEngine._transfer: Record {record.record_id} failed with nonce {nonce}: {e.kind.value}"
            )
            return TransferOutcome.failed(record.record_id, nonce, e.kind, e.detail)

        try:
            await self._settle(user_id, record, tx_id, destination_address)
        except Exception:
            # The transfer is final on-chain; surface the unrecorded tx loudly
            logger.error(
                f"PayoutEngine._transfer: Transfer {tx_id} for record {record.record_id} "
                f"was submitted but could not be recorded"
            )
            logger.error(traceback.format_exc())
            raise
        return TransferOutcome.success(record.record_id, nonce, tx_id)

    async def payout_one(
            self,
            user_id: str,
            record: DetectionRecord,
            destination_address: str,
            claimant_id: Optional[str] = None
        ) -> TransferOutcome:
        """Legacy single-record payout with its own submission retry budget"""
        async with self.ledger.user_lock(user_id):
            ledger = await self._check_preconditions(user_id, destination_address, claimant_id)

            stored = ledger.find(record.record_id)
            if stored is None:
                raise UnauthorizedError(claimant_id if claimant_id is not None else user_id, ledger.user_id)
            if stored.paid:
                logger.info(f"PayoutEngine.payout_one: Record {record.record_id} already paid in {stored.payout_tx_id}")
                return TransferOutcome.success(stored.record_id, None, stored.payout_tx_id)

            max_attempts = self.policy.payout_max_attempts
            outcome: Optional[TransferOutcome] = None
            for attempt in range(max_attempts):
                try:
                    nonce = await self._refetch_nonce()
                except TransferError as e:
                    outcome = TransferOutcome.failed(stored.record_id, None, e.kind, e.detail)
                else:
                    outcome = await self._transfer(user_id, stored, destination_address, nonce)
                    if outcome.succeeded:
                        break

                logger.warning(
                    f"PayoutEngine.payout_one: Transaction attempt {attempt + 1}/{max_attempts} failed: "
                    f"{outcome.failure.value}"
                )
                if attempt < max_attempts - 1:
                    await self._sleep(self.policy.payout_retry_delay)

        if outcome.succeeded:
            record.mark_paid(stored.payout_tx_id, stored.paid_at, stored.paid_to_address)
        return outcome
