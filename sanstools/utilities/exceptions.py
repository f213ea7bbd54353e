from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from sanstools.models.models import TransferFailure

class SansToolsError(Exception):
    """ Base class for all SansTools errors """

class ConfigurationError(SansToolsError):
    """ This exception is raised when node or policy configuration is missing or invalid """

class CredentialsExpiredError(SansToolsError):
    """ This exception is raised when the encryption key has expired """

# LEDGER EXCEPTIONS

class LedgerError(SansToolsError):
    """ This exception is raised when a ledger write would break the append-only history """

# PAYOUT PRECONDITION EXCEPTIONS

class PayoutPreconditionError(SansToolsError):
    """ Base class for failures that abort a claim before any transfer is attempted """

class InvalidAddressError(PayoutPreconditionError):
    """ This exception is raised when the destination is not a valid EVM address """
    def __init__(self, address: Optional[str]):
        self.address = address
        super().__init__(f"Invalid destination address: {address}")

class InvalidCredentialError(PayoutPreconditionError):
    """ This exception is raised when the signing key is missing or malformed """
    def __init__(self, reason: str = "Invalid private key format - expected 32 bytes hex string"):
        super().__init__(reason)

class UnauthorizedError(PayoutPreconditionError):
    """ This exception is raised when the claimant does not own the records being claimed """
    def __init__(self, claimant_id: str, owner_id: Optional[str]):
        self.claimant_id = claimant_id
        self.owner_id = owner_id
        super().__init__(f"Claimant {claimant_id} is not the owner of ledger {owner_id}")

# TRANSFER EXCEPTIONS

class TransferError(SansToolsError):
    """ This exception is raised when a single token transfer could not be submitted """
    def __init__(self, kind: 'TransferFailure', detail: str = ""):
        self.kind = kind
        self.detail = detail
        super().__init__(f"{kind.value}: {detail}" if detail else kind.value)

# ELIGIBILITY EXCEPTIONS

class EligibilityError(SansToolsError):
    """ Base class for eligibility gate rejections """

class ProfileFetchFailedError(EligibilityError):
    """ This exception is raised when the poster's profile could not be retrieved """
    def __init__(self, username: Optional[str], detail: str = ""):
        self.username = username
        super().__init__(f"Could not fetch profile for {username}" + (f": {detail}" if detail else ""))

class IneligibleProfileError(EligibilityError):
    """ This exception is raised when the poster's profile fails the numeric thresholds """
    def __init__(self, username: Optional[str], reasons: list[str]):
        self.username = username
        self.reasons = reasons
        super().__init__(f"Profile {username} is not eligible: {', '.join(reasons)}")
