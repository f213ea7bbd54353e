from dataclasses import dataclass, field, asdict
from typing import Optional, Dict, Any, List, Tuple, TYPE_CHECKING
from enum import Enum
from datetime import datetime as dt, timezone
import uuid

from sanstools.utilities.exceptions import LedgerError

if TYPE_CHECKING:
    from sanstools.protocols.credentials import CredentialManager
    from sanstools.protocols.message_store import MessageStore
    from sanstools.protocols.chain_client import ChainClient
    from sanstools.protocols.profile_provider import ProfileProvider
    from sanstools.configuration.configuration import NodeConfig, NetworkConfig, RewardPolicy

ImageRef = str

def utcnow() -> dt:
    return dt.now(timezone.utc)

def _parse_datetime(value: Any) -> Optional[dt]:
    if value is None or isinstance(value, dt):
        return value
    if isinstance(value, str):
        return dt.fromisoformat(value)
    raise TypeError(f"datetime must be datetime object or ISO format string, got: {type(value)}")

@dataclass
class Dependencies:
    """Container for core dependencies shared by the pipeline components"""
    network_config: 'NetworkConfig'
    node_config: 'NodeConfig'
    credential_manager: 'CredentialManager'
    message_store: 'MessageStore'
    chain_client: 'ChainClient'
    profile_provider: Optional['ProfileProvider'] = None

    @property
    def policy(self) -> 'RewardPolicy':
        return self.node_config.policy

# CLASSIFICATION

class ClassificationFailure(Enum):
    SERVICE_UNAVAILABLE = "service_unavailable"
    LOAD_TIMEOUT = "load_timeout"
    TRANSPORT_ERROR = "transport_error"

@dataclass(frozen=True)
class ClassificationVerdict:
    """Result of classifying one image. Either a score, or a named failure."""
    image_ref: ImageRef
    matched: bool
    confidence: float
    failure: Optional[ClassificationFailure] = None
    detail: Optional[str] = None

    def __post_init__(self):
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence must be within [0, 1], got {self.confidence}")
        if self.failure is not None and (self.matched or self.confidence != 0.0):
            raise ValueError("a failed verdict cannot match or carry a confidence")

    @classmethod
    def success(cls, image_ref: ImageRef, confidence: float, threshold: float) -> 'ClassificationVerdict':
        return cls(image_ref=image_ref, matched=confidence > threshold, confidence=confidence)

    @classmethod
    def failed(cls, image_ref: ImageRef, failure: ClassificationFailure, detail: Optional[str] = None) -> 'ClassificationVerdict':
        return cls(image_ref=image_ref, matched=False, confidence=0.0, failure=failure, detail=detail)

    @property
    def is_failure(self) -> bool:
        return self.failure is not None

# LEDGER

@dataclass(frozen=True)
class ImageMatch:
    image_ref: ImageRef
    confidence: float

class RejectionReason(Enum):
    COOLDOWN_ACTIVE = "cooldown_active"

@dataclass
class DetectionRecord:
    """
    One accepted detection. Created by the ledger with paid=False; the only
    mutation it ever sees is mark_paid.
    """
    source_id: str
    source_url: str
    detected_at: dt
    images: Tuple[ImageMatch, ...]
    reward_amount: int
    record_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    paid: bool = False
    payout_tx_id: Optional[str] = None
    paid_at: Optional[dt] = None
    paid_to_address: Optional[str] = None

    def __post_init__(self):
        self.detected_at = _parse_datetime(self.detected_at)
        self.paid_at = _parse_datetime(self.paid_at)
        self.images = tuple(
            img if isinstance(img, ImageMatch) else ImageMatch(**img)
            for img in self.images
        )
        if self.paid and not (self.payout_tx_id and self.paid_at and self.paid_to_address):
            raise ValueError(f"Record {self.record_id} is paid but missing payout fields")

    def mark_paid(self, tx_id: str, paid_at: dt, address: str):
        """Transition paid False -> True, filling every payout field together"""
        if self.paid:
            raise LedgerError(f"Record {self.record_id} was already paid in {self.payout_tx_id}")
        if not (tx_id and paid_at and address):
            raise ValueError("tx_id, paid_at and address are all required to mark a record paid")
        self.payout_tx_id = tx_id
        self.paid_at = paid_at
        self.paid_to_address = address
        self.paid = True

    @property
    def highest_confidence(self) -> float:
        return max((img.confidence for img in self.images), default=0.0)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['images'] = [asdict(img) for img in self.images]
        data['detected_at'] = self.detected_at.isoformat()
        data['paid_at'] = self.paid_at.isoformat() if self.paid_at else None
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DetectionRecord':
        return cls(**data)

@dataclass
class UserLedger:
    """Append-only history of detection records for one user"""
    user_id: str
    records: List[DetectionRecord] = field(default_factory=list)

    def unpaid(self) -> List[DetectionRecord]:
        return sorted((r for r in self.records if not r.paid), key=lambda r: r.detected_at)

    def paid(self) -> List[DetectionRecord]:
        return sorted((r for r in self.records if r.paid), key=lambda r: r.detected_at)

    def find(self, record_id: str) -> Optional[DetectionRecord]:
        return next((r for r in self.records if r.record_id == record_id), None)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'user_id': self.user_id,
            'records': [r.to_dict() for r in self.records],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'UserLedger':
        return cls(
            user_id=data['user_id'],
            records=[DetectionRecord.from_dict(r) for r in data.get('records', [])],
        )

@dataclass(frozen=True)
class DetectionOutcome:
    accepted: bool
    reason: Optional[RejectionReason] = None
    record: Optional[DetectionRecord] = None
    retry_after: Optional[dt] = None  # When the cooldown lifts

    @property
    def cooldown_active(self) -> bool:
        return self.reason is RejectionReason.COOLDOWN_ACTIVE

# PAYOUT

class TransferFailure(Enum):
    INSUFFICIENT_FUNDS = "insufficient_funds"
    NONCE_CONFLICT = "nonce_conflict"
    NETWORK_ERROR = "network_error"
    REJECTED_BY_CHAIN = "rejected_by_chain"

@dataclass(frozen=True)
class TransferOutcome:
    record_id: str
    nonce: Optional[int]
    tx_id: Optional[str] = None
    failure: Optional[TransferFailure] = None
    detail: Optional[str] = None

    @classmethod
    def success(cls, record_id: str, nonce: int, tx_id: str) -> 'TransferOutcome':
        return cls(record_id=record_id, nonce=nonce, tx_id=tx_id)

    @classmethod
    def failed(cls, record_id: str, nonce: Optional[int], failure: TransferFailure, detail: str = "") -> 'TransferOutcome':
        return cls(record_id=record_id, nonce=nonce, failure=failure, detail=detail)

    @property
    def succeeded(self) -> bool:
        return self.failure is None and self.tx_id is not None

@dataclass
class PayoutSummary:
    paid_count: int = 0
    paid_amount: int = 0
    failed_count: int = 0
    outcomes: List[TransferOutcome] = field(default_factory=list)

    @property
    def tx_ids(self) -> List[str]:
        return [o.tx_id for o in self.outcomes if o.succeeded]

    @property
    def is_empty(self) -> bool:
        return self.paid_count == 0 and self.failed_count == 0

# ELIGIBILITY

@dataclass(frozen=True)
class SocialProfile:
    user_id: str
    username: str
    followers_count: int
    following_count: int
    likes_count: int
    tweets_count: int

# ORCHESTRATOR

@dataclass
class ResponseMessage:
    """What the pipeline hands back to the conversation glue"""
    text: str
    content: Dict[str, Any] = field(default_factory=dict)
