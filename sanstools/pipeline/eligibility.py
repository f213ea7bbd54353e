from typing import Optional
import traceback
from loguru import logger
from sanstools.configuration.configuration import RewardPolicy
from sanstools.models.models import SocialProfile
from sanstools.protocols.profile_provider import ProfileProvider
from sanstools.utilities.exceptions import IneligibleProfileError, ProfileFetchFailedError

class EligibilityGate:
    """Numeric follower/engagement thresholds a poster must meet before detection runs"""

    def __init__(self, profile_provider: ProfileProvider, policy: RewardPolicy):
        self.profile_provider = profile_provider
        self.policy = policy

    def ineligibility_reasons(self, profile: SocialProfile) -> list[str]:
        reasons = []
        if profile.followers_count <= self.policy.min_followers:
            reasons.append(f"needs more than {self.policy.min_followers} followers")
        if profile.following_count <= self.policy.min_following:
            reasons.append(f"needs to follow more than {self.policy.min_following} accounts")
        if profile.likes_count > self.policy.max_likes_per_tweet * profile.tweets_count:
            reasons.append(f"likes exceed {self.policy.max_likes_per_tweet}x tweet count")
        return reasons

    async def check(self, username: Optional[str]) -> SocialProfile:
        """Fetch and vet a poster's profile

        Raises:
            ProfileFetchFailedError: if the profile cannot be retrieved
            IneligibleProfileError: if any threshold is not met
        """
        if not username:
            raise ProfileFetchFailedError(username, "no username supplied")
        try:
            profile = await self.profile_provider.get_profile(username)
        except Exception as e:
            logger.error(f"EligibilityGate.check: Profile lookup for {username} failed: {e}")
            logger.debug(traceback.format_exc())
            raise ProfileFetchFailedError(username, str(e)) from e

        if profile is None:
            raise ProfileFetchFailedError(username, "profile not found")

        reasons = self.ineligibility_reasons(profile)
        if reasons:
            logger.info(f"EligibilityGate.check: {username} rejected: {', '.join(reasons)}")
            raise IneligibleProfileError(username, reasons)
        return profile
