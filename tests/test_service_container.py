import unittest
from unittest import mock

from fakes import SIGNING_KEY, FakeProfileProvider
from sanstools.configuration.configuration import NodeConfig, RewardPolicy, RuntimeConfig
from sanstools.container.service_container import ServiceContainer
from sanstools.ledger.message_store import InMemoryMessageStore
from sanstools.pipeline.eligibility import EligibilityGate
from sanstools.utilities.exceptions import ConfigurationError, InvalidCredentialError

TOKEN = "0x00Ef6220B7e28E890a5A265D82589e072564Cc57"

def credential_manager(signing_key=SIGNING_KEY):
    manager = mock.MagicMock()
    manager.get_signing_key.return_value = signing_key
    manager.get_credential.return_value = "hf_test_key"
    return manager

class TestServiceContainer(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        RuntimeConfig.USE_TESTNET = True
        self.node_config = NodeConfig(node_name="sansnode", token_address=TOKEN, policy=RewardPolicy(per_image_reward=5))

    async def test_build_wires_one_policy_through_every_component(self):
        store = InMemoryMessageStore()
        container = ServiceContainer.build(
            credential_manager(), self.node_config,
            profile_provider=FakeProfileProvider(), message_store=store,
        )
        try:
            self.assertIs(container.ledger.message_store, store)
            self.assertIsNone(container.db_connection_manager)
            self.assertEqual(container.network_config.chain_id, 84532)
            self.assertEqual(container.network_config.token_address, TOKEN)
            orchestrator = container.orchestrator
            self.assertIsInstance(orchestrator.eligibility_gate, EligibilityGate)
            for component in (container.ledger, container.payout_engine, orchestrator.classifier):
                self.assertEqual(component.policy.per_image_reward, 5)
            self.assertEqual(orchestrator.classifier.api_key, "hf_test_key")
            self.assertEqual(container.dependencies.policy, self.node_config.policy)
        finally:
            await container.close()

    async def test_gate_disabled_without_profile_provider(self):
        container = ServiceContainer.build(credential_manager(), self.node_config, message_store=InMemoryMessageStore())
        try:
            self.assertIsNone(container.orchestrator.eligibility_gate)
        finally:
            await container.close()

    def test_missing_token_address_on_testnet(self):
        with self.assertRaises(ConfigurationError):
            ServiceContainer.build(credential_manager(), NodeConfig(node_name="sansnode"), message_store=InMemoryMessageStore())

    def test_missing_signing_key(self):
        manager = credential_manager()
        manager.get_signing_key.side_effect = InvalidCredentialError("Signing key is not configured")
        with self.assertRaises(InvalidCredentialError):
            ServiceContainer.build(manager, self.node_config, message_store=InMemoryMessageStore())

if __name__ == '__main__':
    unittest.main()
