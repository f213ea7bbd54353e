"""
Dispatches detection and claim requests through the gateway, ledger and payout engine,
and turns every outcome into a ResponseMessage for the conversation glue.
"""
# Standard imports
from typing import Optional, Sequence, Callable
from datetime import datetime
import re
import traceback

# Third party imports
from loguru import logger

# SansTools imports
from sanstools.configuration.configuration import NetworkConfig
from sanstools.configuration.constants import ETH_ADDRESS_PATTERN
from sanstools.ledger.detection_ledger import DetectionLedger
from sanstools.models.models import ImageRef, ResponseMessage, utcnow
from sanstools.payout.payout_engine import PayoutEngine
from sanstools.pipeline.eligibility import EligibilityGate
from sanstools.protocols.classifier import Classifier
from sanstools.utilities.exceptions import (
    EligibilityError,
    IneligibleProfileError,
    InvalidAddressError,
    InvalidCredentialError,
    UnauthorizedError,
)

SUBMIT_IMAGE_PROMPT = "Share an image containing Comic Sans to earn ${symbol} rewards! 🎨"
NO_MATCH_TEXT = (
    "Nice try, but I don't see any Comic Sans in these images! "
    "Try again with some Comic Sans font to earn ${symbol} rewards! ✨"
)
NO_ADDRESS_TEXT = (
    "I couldn't find a valid Ethereum address in your message. "
    "Please reply with your wallet address to receive your ${symbol} reward."
)

def extract_address(reply_text: Optional[str]) -> Optional[str]:
    """First 0x-prefixed 40-hex-char address in a reply, if any"""
    if not reply_text:
        return None
    match = re.search(ETH_ADDRESS_PATTERN, reply_text)
    return match.group(0) if match else None

def format_remaining(seconds: float) -> str:
    hours, remainder = divmod(max(int(seconds), 0), 3600)
    minutes = remainder // 60
    return f"{hours}h {minutes:02d}m"

class RewardOrchestrator:

    def __init__(
            self,
            classifier: Classifier,
            ledger: DetectionLedger,
            payout_engine: PayoutEngine,
            network_config: NetworkConfig,
            eligibility_gate: Optional[EligibilityGate] = None,
            clock: Callable[[], datetime] = utcnow
        ):
        self.classifier = classifier
        self.ledger = ledger
        self.payout_engine = payout_engine
        self.network_config = network_config
        self.eligibility_gate = eligibility_gate
        self.clock = clock

    @property
    def symbol(self) -> str:
        return self.network_config.token_symbol

    def _text(self, template: str) -> str:
        return template.replace("{symbol}", self.symbol)

    async def on_detection_request(
            self,
            user_id: str,
            source_id: str,
            source_url: str,
            image_refs: Sequence[ImageRef],
            username: Optional[str] = None
        ) -> ResponseMessage:
        try:
            return await self._handle_detection(user_id, source_id, source_url, image_refs, username)
        except Exception as e:
            logger.error(f"RewardOrchestrator.on_detection_request: Detection failed for {user_id}: {e}")
            logger.error(traceback.format_exc())
            return ResponseMessage(
                text=f"Sorry, there was an error checking your images: {e}",
                content={'error': str(e)}
            )

    async def _handle_detection(
            self,
            user_id: str,
            source_id: str,
            source_url: str,
            image_refs: Sequence[ImageRef],
            username: Optional[str]
        ) -> ResponseMessage:
        if not image_refs:
            return ResponseMessage(text=self._text(SUBMIT_IMAGE_PROMPT))

        if self.eligibility_gate is not None:
            try:
                await self.eligibility_gate.check(username)
            except IneligibleProfileError as e:
                return ResponseMessage(
                    text="Sorry, your account isn't eligible for rewards yet.",
                    content={'error': 'ineligible_profile', 'reasons': e.reasons}
                )
            except EligibilityError as e:
                return ResponseMessage(
                    text="Sorry, I couldn't verify your profile right now. Please try again later.",
                    content={'error': 'profile_fetch_failed', 'detail': str(e)}
                )

        verdicts = await self.classifier.classify_all(image_refs)
        now = self.clock()
        outcome = await self.ledger.record_detection(user_id, source_id, source_url, verdicts, now)

        lines = []
        failed = sum(1 for v in verdicts if v.is_failure)
        if failed:
            lines.append(f"⚠️ Some images couldn't be processed ({failed}/{len(verdicts)} failed)")

        content = {'failed': failed, 'total': len(verdicts)}

        if outcome.accepted:
            record = outcome.record
            lines.append(
                f"🎉 Congratulations! Comic Sans detected in {len(record.images)} image(s) "
                f"(highest confidence: {record.highest_confidence * 100:.1f}%)! "
                f"You've earned {record.reward_amount} ${self.symbol}!\n\n"
                f"Please reply with your Ethereum wallet address to receive your reward. 💰"
            )
            content['detection'] = record.to_dict()
        elif outcome.cooldown_active:
            remaining = (outcome.retry_after - now).total_seconds()
            lines.append(
                f"Comic Sans spotted, but you've already earned a reward recently. "
                f"Try again in {format_remaining(remaining)}! ⏳"
            )
            content['error'] = 'cooldown_active'
            content['cooldown_remaining_seconds'] = int(remaining)
        else:
            lines.append(self._text(NO_MATCH_TEXT))

        return ResponseMessage(text="\n".join(lines), content=content)

    async def on_claim_request(
            self,
            user_id: str,
            destination_address: Optional[str],
            claimant_id: Optional[str] = None
        ) -> ResponseMessage:
        if not destination_address:
            return ResponseMessage(text=self._text(NO_ADDRESS_TEXT), content={'error': 'missing_address'})
        try:
            return await self._handle_claim(user_id, destination_address, claimant_id)
        except InvalidAddressError as e:
            return ResponseMessage(text=self._text(NO_ADDRESS_TEXT), content={'error': 'invalid_address', 'detail': str(e)})
        except UnauthorizedError:
            return ResponseMessage(
                text="Sorry, only the original poster can claim these rewards!",
                content={'error': 'unauthorized'}
            )
        except InvalidCredentialError as e:
            logger.error(f"RewardOrchestrator.on_claim_request: Payout wallet misconfigured: {e}")
            return ResponseMessage(
                text="Sorry, rewards can't be sent right now. Please try again later.",
                content={'error': 'invalid_credential'}
            )
        except Exception as e:
            logger.error(f"RewardOrchestrator.on_claim_request: Claim failed for {user_id}: {e}")
            logger.error(traceback.format_exc())
            return ResponseMessage(
                text=f"Sorry, there was an error sending your rewards: {e}",
                content={'error': str(e)}
            )

    async def _handle_claim(self, user_id: str, destination_address: str, claimant_id: Optional[str]) -> ResponseMessage:
        summary = await self.payout_engine.payout(user_id, destination_address, claimant_id)

        if summary.is_empty:
            ledger = await self.ledger.get_ledger(user_id)
            paid = ledger.paid()
            if paid:
                last = paid[-1]
                return ResponseMessage(
                    text="These rewards have already been claimed!",
                    content={
                        'error': 'already_paid',
                        'paidOutTx': last.payout_tx_id,
                        'paidOutAt': last.paid_at.isoformat(),
                        'paidToAddress': last.paid_to_address,
                    }
                )
            return ResponseMessage(
                text="I couldn't find any pending Comic Sans rewards for you. Please share images with Comic Sans first!",
                content={'error': 'no_pending_rewards'}
            )

        lines = []
        if summary.paid_count:
            lines.append(
                f"🎉 Successfully sent {summary.paid_amount} ${self.symbol} to {destination_address}!"
            )
            lines.extend(f"View transaction: {self.network_config.explorer_url(tx)}" for tx in summary.tx_ids)
        if summary.failed_count:
            lines.append(
                f"⚠️ {summary.failed_count} reward(s) couldn't be sent this time. "
                f"Reply with your address again later to retry."
            )

        return ResponseMessage(
            text="\n".join(lines),
            content={
                'success': summary.failed_count == 0,
                'paidCount': summary.paid_count,
                'paidAmount': summary.paid_amount,
                'failedCount': summary.failed_count,
                'hashes': summary.tx_ids,
                'recipient': destination_address,
            }
        )
