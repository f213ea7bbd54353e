from enum import Enum
from pathlib import Path

CONFIG_DIR = Path.home().joinpath("sanstoolscreds")

# CLASSIFIER
DEFAULT_CLASSIFIER_URL = "https://api-inference.huggingface.co/models/shoni/comic-sans-detector"
DEFAULT_TARGET_LABEL = "comic"
COMIC_SANS_THRESHOLD = 0.85
CLASSIFIER_MAX_RETRIES = 3
CLASSIFIER_RETRY_DELAY = 12  # seconds
CLASSIFIER_TIMEOUT = 60  # seconds

# LEDGER
DETECTION_COOLDOWN_HOURS = 24
PER_IMAGE_REWARD = 10
LEDGER_RECORD_TYPE = "comic_sans_ledger"

# PAYOUT
PAYOUT_MAX_ATTEMPTS = 3
PAYOUT_RETRY_DELAY = 1  # seconds
RECEIPT_TIMEOUT = 120  # seconds

# ELIGIBILITY
MIN_FOLLOWERS = 100
MIN_FOLLOWING = 100
MAX_LIKES_PER_TWEET = 10

# EVM
ETH_ADDRESS_PATTERN = r"0x[a-fA-F0-9]{40}"
PRIVATE_KEY_PATTERN = r"^0x[a-fA-F0-9]{64}$"
ERC20_TRANSFER_ABI = [
    {
        "constant": False,
        "inputs": [
            {"name": "_to", "type": "address"},
            {"name": "_value", "type": "uint256"},
        ],
        "name": "transfer",
        "outputs": [{"name": "", "type": "bool"}],
        "stateMutability": "nonpayable",
        "type": "function",
    }
]

class CredentialKey(Enum):
    """Credential names; NODE-scoped keys are prefixed with the node name"""
    SIGNING_KEY = '__evm_private_key'
    POSTGRES = '_postgresconnstring'
    HUGGINGFACE = 'huggingface_api_key'

    def for_node(self, node_name: str) -> str:
        if self is CredentialKey.HUGGINGFACE:
            return self.value
        return f"{node_name}{self.value}"
