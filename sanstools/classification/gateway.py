"""
Retrying gateway over the hosted image classifier.

The inference endpoint is flaky: it answers 503 while the service is unavailable
and a JSON `{"error": "... is currently loading", "estimated_time": ...}` while the
model warms up. Both are retried on a fixed delay; anything else that goes wrong is
a terminal transport failure for that image only.
"""
# Standard imports
from typing import Optional, Sequence, Callable, Awaitable, Any
import asyncio
import traceback

# Third party imports
import httpx
from loguru import logger

# SansTools imports
from sanstools.configuration.configuration import RewardPolicy
from sanstools.models.models import ClassificationVerdict, ClassificationFailure, ImageRef

class _RetryableResponse(Exception):
    """Internal signal: the attempt should be retried after the delay"""
    def __init__(self, failure: ClassificationFailure, detail: str):
        self.failure = failure
        self.detail = detail
        super().__init__(detail)

class ClassificationGateway:
    """Classifies images against the target label, one independent retry budget per image"""

    def __init__(
            self,
            http_client: httpx.AsyncClient,
            classifier_url: str,
            api_key: Optional[str],
            policy: RewardPolicy,
            sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
        ):
        self.http_client = http_client
        self.classifier_url = classifier_url
        self.api_key = api_key
        self.policy = policy
        self._sleep = sleep

    @property
    def headers(self) -> dict:
        headers = {'Content-Type': 'application/json'}
        if self.api_key:
            headers['Authorization'] = f"Bearer {self.api_key}"
        return headers

    async def classify_all(self, image_refs: Sequence[ImageRef]) -> list[ClassificationVerdict]:
        """Classify all images concurrently. Verdicts come back in input order."""
        if not image_refs:
            return []

        tasks = [
            asyncio.create_task(self.classify(image_ref), name=f"ClassificationGateway_{idx}")
            for idx, image_ref in enumerate(image_refs)
        ]
        verdicts = await asyncio.gather(*tasks)

        failed = sum(1 for v in verdicts if v.is_failure)
        logger.debug(
            f"ClassificationGateway.classify_all: {len(verdicts)} images classified, "
            f"{sum(1 for v in verdicts if v.matched)} matched, {failed} failed"
        )
        return list(verdicts)

    async def classify(self, image_ref: ImageRef) -> ClassificationVerdict:
        """Classify one image. Never raises; failures are returned as verdicts."""
        max_retries = self.policy.max_retries
        last: Optional[_RetryableResponse] = None

        for attempt in range(max_retries):
            try:
                confidence = await self._request_score(image_ref)
                verdict = ClassificationVerdict.success(image_ref, confidence, self.policy.threshold)
                logger.debug(
                    f"ClassificationGateway.classify: {image_ref} scored {confidence:.3f} "
                    f"(matched={verdict.matched})"
                )
                return verdict

            except _RetryableResponse as e:
                last = e
                logger.warning(
                    f"ClassificationGateway.classify: {e.detail} for {image_ref}. "
                    f"Attempt {attempt + 1}/{max_retries}"
                )
                if attempt < max_retries - 1:
                    await self._sleep(self.policy.retry_delay)

            except (httpx.HTTPError, ValueError, KeyError, TypeError) as e:
                logger.error(f"ClassificationGateway.classify: Error classifying {image_ref}: {e}")
                logger.debug(traceback.format_exc())
                return ClassificationVerdict.failed(
                    image_ref, ClassificationFailure.TRANSPORT_ERROR, str(e) or type(e).__name__
                )

        return ClassificationVerdict.failed(image_ref, last.failure, last.detail)

    async def _request_score(self, image_ref: ImageRef) -> float:
        """Run one request and return the target label's score

        Raises:
            _RetryableResponse: on 503 or a model-loading body
            httpx.HTTPError, ValueError: on transport or parse failures
        """
        response = await self.http_client.post(
            self.classifier_url,
            json={'url': image_ref},
            headers=self.headers
        )

        if response.status_code == 503:
            raise _RetryableResponse(ClassificationFailure.SERVICE_UNAVAILABLE, "503 Service Unavailable")

        result = response.json()

        if isinstance(result, dict) and 'error' in result:
            error = str(result['error'])
            if 'loading' in error.lower():
                estimated_time = result.get('estimated_time', 20)
                raise _RetryableResponse(
                    ClassificationFailure.LOAD_TIMEOUT,
                    f"Model loading timeout (estimated {estimated_time}s)"
                )
            raise ValueError(f"Classifier returned an error: {error}")

        response.raise_for_status()
        return self.extract_score(result, self.policy.target_label)

    @staticmethod
    def extract_score(result: Any, label: str) -> float:
        """Pull the score for `label` out of a [{label, score}, ...] payload. Absent label scores 0."""
        # Some deployments wrap the list once more per input image
        if isinstance(result, list) and result and isinstance(result[0], list):
            result = result[0]
        if not isinstance(result, list):
            raise ValueError(f"Unexpected classifier payload: {result!r}")

        for entry in result:
            if entry['label'] == label:
                score = float(entry['score'])
                return min(max(score, 0.0), 1.0)
        return 0.0
