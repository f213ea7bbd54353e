from typing import Protocol, Optional
from sanstools.models.models import SocialProfile

class ProfileProvider(Protocol):
    """Looks up the social profile of the account that posted an image"""
    async def get_profile(self, username: str) -> Optional[SocialProfile]:
        ...
