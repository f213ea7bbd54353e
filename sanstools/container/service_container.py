# Standard Library
from dataclasses import dataclass
from typing import Optional, Callable
import traceback
import getpass

# Third Party
import httpx
from loguru import logger

# Local
from ..configuration.configuration import (
    get_node_config,
    get_network_config,
    NodeConfig,
    NetworkConfig,
)
from ..configuration.constants import CLASSIFIER_TIMEOUT, CredentialKey
from ..classification.gateway import ClassificationGateway
from ..ledger.detection_ledger import DetectionLedger
from ..ledger.message_store import PostgresMessageStore
from ..models.models import Dependencies
from ..payout.evm_client import EVMChainClient
from ..payout.payout_engine import PayoutEngine
from ..pipeline.eligibility import EligibilityGate
from ..pipeline.orchestrator import RewardOrchestrator
from ..protocols.message_store import MessageStore
from ..protocols.profile_provider import ProfileProvider
from ..utilities.credentials import CredentialManager
from ..utilities.db_manager import DBConnectionManager

@dataclass
class ServiceContainer:
    """Container for SansTools service initialization and management"""
    dependencies: Dependencies
    orchestrator: RewardOrchestrator
    ledger: DetectionLedger
    payout_engine: PayoutEngine
    http_client: httpx.AsyncClient
    db_connection_manager: Optional[DBConnectionManager] = None

    @classmethod
    def initialize(
        cls,
        password_prompt: Optional[Callable[[], str]] = None,
        node_config: Optional[NodeConfig] = None,
        profile_provider: Optional[ProfileProvider] = None,
        message_store: Optional[MessageStore] = None,
    ) -> 'ServiceContainer':
        """
        Initialize all SansTools services with credential management

        Args:
            password_prompt: Optional function to get password (defaults to getpass.getpass)
            node_config: Optional node configuration (defaults to the config file for the network)
            profile_provider: Optional profile lookup; without one the eligibility gate is skipped
            message_store: Optional ledger store; defaults to PostgreSQL
        """
        password_prompt = password_prompt or (lambda: getpass.getpass("Enter your password: "))
        credential_manager = CredentialManager(password=password_prompt())
        return cls.build(credential_manager, node_config or get_node_config(), profile_provider, message_store)

    @classmethod
    def build(
        cls,
        credential_manager: CredentialManager,
        node_config: NodeConfig,
        profile_provider: Optional[ProfileProvider] = None,
        message_store: Optional[MessageStore] = None,
    ) -> 'ServiceContainer':
        try:
            network_config: NetworkConfig = get_network_config(node_config)
            policy = node_config.policy
            signing_key = credential_manager.get_signing_key(node_config.node_name)

            db_connection_manager = None
            if message_store is None:
                db_connection_manager = DBConnectionManager(credential_manager=credential_manager)
                message_store = PostgresMessageStore(db_connection_manager, node_config.node_name)

            chain_client = EVMChainClient(
                network_config=network_config,
                signing_key=signing_key,
                wait_for_receipt=node_config.wait_for_receipt,
            )

            http_client = httpx.AsyncClient(timeout=CLASSIFIER_TIMEOUT)
            gateway = ClassificationGateway(
                http_client=http_client,
                classifier_url=node_config.classifier_url,
                api_key=credential_manager.get_credential(CredentialKey.HUGGINGFACE.for_node(node_config.node_name)),
                policy=policy,
            )

            ledger = DetectionLedger(message_store=message_store, policy=policy)
            payout_engine = PayoutEngine(
                ledger=ledger,
                chain_client=chain_client,
                signing_key=signing_key,
                policy=policy,
            )

            eligibility_gate = EligibilityGate(profile_provider, policy) if profile_provider else None
            if eligibility_gate is None:
                logger.warning("ServiceContainer.build: No profile provider configured, eligibility gate disabled")

            orchestrator = RewardOrchestrator(
                classifier=gateway,
                ledger=ledger,
                payout_engine=payout_engine,
                network_config=network_config,
                eligibility_gate=eligibility_gate,
            )

            deps = Dependencies(
                network_config=network_config,
                node_config=node_config,
                credential_manager=credential_manager,
                message_store=message_store,
                chain_client=chain_client,
                profile_provider=profile_provider,
            )

            logger.info(f"All SansTools services initialized on {network_config.name}")

            return cls(
                dependencies=deps,
                orchestrator=orchestrator,
                ledger=ledger,
                payout_engine=payout_engine,
                http_client=http_client,
                db_connection_manager=db_connection_manager,
            )

        except Exception as e:
            logger.error(f"Error initializing services: {e}")
            logger.error(traceback.format_exc())
            raise

    @property
    def node_config(self) -> NodeConfig:
        return self.dependencies.node_config

    @property
    def network_config(self) -> NetworkConfig:
        return self.dependencies.network_config

    async def close(self):
        """Release the HTTP client, chain provider and database pool"""
        await self.http_client.aclose()
        await self.dependencies.chain_client.close()
        if self.db_connection_manager:
            await self.db_connection_manager.close()
