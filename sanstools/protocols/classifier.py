from typing import Protocol, Sequence
from sanstools.models.models import ClassificationVerdict, ImageRef

class Classifier(Protocol):
    """Protocol for the ClassificationGateway"""
    async def classify(self, image_ref: ImageRef) -> ClassificationVerdict:
        """Classify one image; failures are returned as verdicts, never raised"""
        ...

    async def classify_all(self, image_refs: Sequence[ImageRef]) -> list[ClassificationVerdict]:
        """Classify every image concurrently and return once all have resolved"""
        ...
