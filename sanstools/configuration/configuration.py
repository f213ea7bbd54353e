from dataclasses import dataclass, field, fields, replace
from datetime import timedelta
from typing import Optional, Dict, Any
from loguru import logger
import json
from pathlib import Path
import sanstools.configuration.constants as global_constants
from sanstools.utilities.exceptions import ConfigurationError

@dataclass(frozen=True)
class RewardPolicy:
    """Policy knobs shared by the gateway, ledger, payout engine and eligibility gate"""
    threshold: float = global_constants.COMIC_SANS_THRESHOLD
    target_label: str = global_constants.DEFAULT_TARGET_LABEL
    max_retries: int = global_constants.CLASSIFIER_MAX_RETRIES
    retry_delay: float = global_constants.CLASSIFIER_RETRY_DELAY
    cooldown: timedelta = timedelta(hours=global_constants.DETECTION_COOLDOWN_HOURS)
    per_image_reward: int = global_constants.PER_IMAGE_REWARD
    payout_max_attempts: int = global_constants.PAYOUT_MAX_ATTEMPTS
    payout_retry_delay: float = global_constants.PAYOUT_RETRY_DELAY
    min_followers: int = global_constants.MIN_FOLLOWERS
    min_following: int = global_constants.MIN_FOLLOWING
    max_likes_per_tweet: int = global_constants.MAX_LIKES_PER_TWEET

    def __post_init__(self):
        if not 0 <= self.threshold <= 1:
            raise ConfigurationError(f"threshold must be within [0, 1], got {self.threshold}")
        if self.max_retries < 1 or self.payout_max_attempts < 1:
            raise ConfigurationError("retry budgets must allow at least one attempt")
        if self.per_image_reward <= 0:
            raise ConfigurationError(f"per_image_reward must be positive, got {self.per_image_reward}")
        if self.cooldown < timedelta(0):
            raise ConfigurationError("cooldown cannot be negative")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RewardPolicy':
        """Build a policy from JSON config, where cooldown is given as `cooldown_hours`"""
        known = {f.name for f in fields(cls)}
        overrides = {k: v for k, v in data.items() if k in known and k != 'cooldown'}
        if 'cooldown_hours' in data:
            overrides['cooldown'] = timedelta(hours=float(data['cooldown_hours']))
        unknown = set(data) - known - {'cooldown_hours'}
        if unknown:
            logger.warning(f"RewardPolicy.from_dict: Ignoring unknown policy keys: {sorted(unknown)}")
        return replace(cls(), **overrides)

@dataclass
class NetworkConfig:
    """Configuration for an EVM network (mainnet or testnet)"""
    name: str
    chain_id: int
    rpc_url: str
    explorer_tx_url_mask: str
    token_address: Optional[str] = None
    token_symbol: str = "COMICSANS"
    token_decimals: int = 18

    def explorer_url(self, tx_hash: str) -> str:
        return self.explorer_tx_url_mask.format(hash=tx_hash)

@dataclass
class NodeConfig:
    """Configuration for a reward node"""
    node_name: str
    payout_address: Optional[str] = None
    classifier_url: str = global_constants.DEFAULT_CLASSIFIER_URL
    token_address: Optional[str] = None  # Overrides the network's token
    rpc_url: Optional[str] = None        # Overrides the network's public RPC
    wait_for_receipt: bool = False
    policy: RewardPolicy = field(default_factory=RewardPolicy)

    def __post_init__(self):
        if not self.node_name:
            raise ConfigurationError("node_name is required")

class RuntimeConfig:
    """Runtime configuration settings"""
    USE_TESTNET: bool = True

# Network configurations
BASE_MAINNET = NetworkConfig(
    name="mainnet",
    chain_id=8453,
    rpc_url="https://mainnet.base.org",
    explorer_tx_url_mask="https://basescan.org/tx/{hash}",
    token_address="0x00Ef6220B7e28E890a5A265D82589e072564Cc57",
)

BASE_TESTNET = NetworkConfig(
    name="testnet",
    chain_id=84532,
    rpc_url="https://sepolia.base.org",
    explorer_tx_url_mask="https://sepolia.basescan.org/tx/{hash}",
    token_address=None,  # Must come from the node config
)

def get_network_config(node_config: Optional[NodeConfig] = None) -> NetworkConfig:
    """Get current network configuration based on runtime settings and node overrides"""
    network = BASE_TESTNET if RuntimeConfig.USE_TESTNET else BASE_MAINNET
    if node_config is None:
        return network
    return replace(
        network,
        token_address=node_config.token_address or network.token_address,
        rpc_url=node_config.rpc_url or network.rpc_url,
    )

def get_node_config_path() -> Path:
    network = 'testnet' if RuntimeConfig.USE_TESTNET else 'mainnet'
    return global_constants.CONFIG_DIR / f"sans_node_{network}_config.json"

def get_node_config() -> NodeConfig:
    """Get current node configuration based on runtime settings"""
    config_file = get_node_config_path()

    if not config_file.exists():
        raise ConfigurationError(
            f"No configuration file found at {config_file}. "
            f"Run 'sanstools setup-node' to create a new configuration file."
        )

    return load_node_config(config_file)

def load_node_config(config_path: str | Path) -> NodeConfig:
    """Load node configuration from JSON file"""
    with open(config_path, 'r') as file:
        config_data = json.load(file)
    return node_config_from_dict(config_data)

def node_config_from_dict(config_data: Dict[str, Any]) -> NodeConfig:
    try:
        node_name = config_data['node_name']
    except KeyError:
        raise ConfigurationError("Node configuration is missing 'node_name'")
    return NodeConfig(
        node_name=node_name,
        payout_address=config_data.get('payout_address'),
        classifier_url=config_data.get('classifier_url', global_constants.DEFAULT_CLASSIFIER_URL),
        token_address=config_data.get('token_address'),
        rpc_url=config_data.get('rpc_url'),
        wait_for_receipt=bool(config_data.get('wait_for_receipt', False)),
        policy=RewardPolicy.from_dict(config_data.get('policy', {})),
    )
