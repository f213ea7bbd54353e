"""
Append-only, per-user ledger of accepted detections.

Each user's ledger is a single opaque record in the message store, keyed by a
deterministic UUID of the user's platform identity. Writes replace the whole
record atomically (remove then create in one store operation), so every
read-modify-write for a user must hold that user's lock.
"""
from typing import Optional, Sequence, Dict, Callable
from datetime import datetime
from contextlib import asynccontextmanager
import asyncio
import uuid

from loguru import logger

from sanstools.configuration.configuration import RewardPolicy
from sanstools.configuration.constants import LEDGER_RECORD_TYPE
from sanstools.models.models import (
    ClassificationVerdict,
    DetectionOutcome,
    DetectionRecord,
    ImageMatch,
    RejectionReason,
    UserLedger,
    utcnow,
)
from sanstools.protocols.message_store import MessageStore
from sanstools.utilities.exceptions import LedgerError

LEDGER_NAMESPACE = uuid.UUID('5f0c6a0e-3b1f-4c8e-9d3a-2c7b8e1f4a60')

def ledger_key(user_id: str) -> str:
    """Deterministic store id for a user's ledger"""
    return str(uuid.uuid5(LEDGER_NAMESPACE, f"{LEDGER_RECORD_TYPE}:{user_id}"))

class DetectionLedger:

    def __init__(
            self,
            message_store: MessageStore,
            policy: RewardPolicy,
            clock: Callable[[], datetime] = utcnow
        ):
        self.message_store = message_store
        self.policy = policy
        self.clock = clock
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}  # holders plus waiters per user

    @asynccontextmanager
    async def user_lock(self, user_id: str):
        """Serialize ledger read-modify-write for one user within this process"""
        lock = self._locks.setdefault(user_id, asyncio.Lock())
        self._lock_users[user_id] = self._lock_users.get(user_id, 0) + 1
        if lock.locked():
            logger.debug(f"DetectionLedger.user_lock: Waiting for in-flight operation on {user_id}")
        try:
            async with lock:
                yield
        finally:
            self._lock_users[user_id] -= 1
            if not self._lock_users[user_id]:
                # Nobody holds or waits on it any more
                del self._lock_users[user_id]
                del self._locks[user_id]

    async def get_ledger(self, user_id: str) -> UserLedger:
        """Load a user's ledger; absent means empty"""
        stored = await self.message_store.get_by_id(ledger_key(user_id))
        if stored is None:
            return UserLedger(user_id=user_id)
        return UserLedger.from_dict(stored['content'])

    async def _save(self, ledger: UserLedger):
        await self.message_store.replace({
            'id': ledger_key(ledger.user_id),
            'type': LEDGER_RECORD_TYPE,
            'user_id': ledger.user_id,
            'content': ledger.to_dict(),
        })

    async def record_detection(
            self,
            user_id: str,
            source_id: str,
            source_url: str,
            verdicts: Sequence[ClassificationVerdict],
            now: Optional[datetime] = None
        ) -> DetectionOutcome:
        """Append a detection record for the matched verdicts, subject to the per-user cooldown

        Returns:
            DetectionOutcome: accepted with the new record, rejected with COOLDOWN_ACTIVE,
                or rejected without a reason when nothing matched
        """
        matched = [v for v in verdicts if v.matched]
        if not matched:
            return DetectionOutcome(accepted=False)

        now = now or self.clock()

        async with self.user_lock(user_id):
            ledger = await self.get_ledger(user_id)

            blocking = [r for r in ledger.records if now - r.detected_at < self.policy.cooldown]
            if blocking:
                retry_after = max(r.detected_at for r in blocking) + self.policy.cooldown
                logger.info(
                    f"DetectionLedger.record_detection: Cooldown active for {user_id} "
                    f"until {retry_after.isoformat()}"
                )
                return DetectionOutcome(
                    accepted=False,
                    reason=RejectionReason.COOLDOWN_ACTIVE,
                    retry_after=retry_after
                )

            record = DetectionRecord(
                source_id=source_id,
                source_url=source_url,
                detected_at=now,
                images=tuple(ImageMatch(v.image_ref, v.confidence) for v in matched),
                reward_amount=len(matched) * self.policy.per_image_reward,
            )
            ledger.records.append(record)
            await self._save(ledger)

        logger.info(
            f"DetectionLedger.record_detection: Recorded detection {record.record_id} for {user_id} "
            f"({len(matched)} images, reward {record.reward_amount})"
        )
        return DetectionOutcome(accepted=True, record=record)

    async def get_unpaid(self, user_id: str) -> list[DetectionRecord]:
        """Unpaid records for a user, ascending by detected_at"""
        ledger = await self.get_ledger(user_id)
        return ledger.unpaid()

    async def mark_paid(self, user_id: str, record: DetectionRecord):
        """Persist a record that was just marked paid into its owning ledger.

        The caller must hold user_lock(user_id).

        Raises:
            LedgerError: if the record is not in the ledger, is not marked paid,
                or the stored copy is already paid
        """
        if not record.paid:
            raise LedgerError(f"Record {record.record_id} has not been marked paid")

        ledger = await self.get_ledger(user_id)
        stored = ledger.find(record.record_id)
        if stored is None:
            raise LedgerError(f"Record {record.record_id} does not belong to the ledger of {user_id}")
        if stored.paid:
            raise LedgerError(f"Record {record.record_id} is already paid in {stored.payout_tx_id}")

        stored.mark_paid(record.payout_tx_id, record.paid_at, record.paid_to_address)
        await self._save(ledger)
        logger.debug(f"DetectionLedger.mark_paid: Persisted payout {record.payout_tx_id} for {record.record_id}")
