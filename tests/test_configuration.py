import json
import tempfile
import unittest
from datetime import timedelta
from pathlib import Path
from unittest import mock

import sanstools.configuration.constants as global_constants
from sanstools.configuration.configuration import (
    BASE_MAINNET,
    BASE_TESTNET,
    NodeConfig,
    RewardPolicy,
    RuntimeConfig,
    get_network_config,
    get_node_config,
    load_node_config,
)
from sanstools.configuration.constants import CredentialKey
from sanstools.utilities.exceptions import ConfigurationError

class TestRewardPolicy(unittest.TestCase):

    def test_defaults(self):
        policy = RewardPolicy()
        self.assertEqual(policy.threshold, 0.85)
        self.assertEqual(policy.cooldown, timedelta(hours=24))
        self.assertEqual(policy.per_image_reward, 10)
        self.assertEqual((policy.max_retries, policy.retry_delay), (3, 12))
        self.assertEqual((policy.payout_max_attempts, policy.payout_retry_delay), (3, 1))

    def test_from_dict(self):
        policy = RewardPolicy.from_dict({'threshold': 0.9, 'cooldown_hours': 0.5, 'per_image_reward': 5, 'bogus': 1})
        self.assertEqual(policy.threshold, 0.9)
        self.assertEqual(policy.cooldown, timedelta(minutes=30))
        self.assertEqual(policy.per_image_reward, 5)
        self.assertEqual(policy.target_label, "comic")

    def test_invalid_values(self):
        for overrides in ({'threshold': 1.5}, {'max_retries': 0}, {'per_image_reward': 0}, {'cooldown': timedelta(hours=-1)}):
            with self.subTest(overrides=overrides):
                with self.assertRaises(ConfigurationError):
                    RewardPolicy(**overrides)

class TestNetworkConfig(unittest.TestCase):

    def tearDown(self):
        RuntimeConfig.USE_TESTNET = True

    def test_runtime_selects_network(self):
        RuntimeConfig.USE_TESTNET = False
        self.assertEqual(get_network_config(), BASE_MAINNET)
        RuntimeConfig.USE_TESTNET = True
        self.assertEqual(get_network_config(), BASE_TESTNET)

    def test_node_overrides(self):
        RuntimeConfig.USE_TESTNET = False
        node = NodeConfig(node_name="sansnode", rpc_url="https://rpc.example")
        network = get_network_config(node)
        self.assertEqual(network.rpc_url, "https://rpc.example")
        self.assertEqual(network.token_address, BASE_MAINNET.token_address)
        self.assertEqual(BASE_MAINNET.rpc_url, "https://mainnet.base.org")

    def test_explorer_url(self):
        self.assertEqual(BASE_MAINNET.explorer_url("0xabc"), "https://basescan.org/tx/0xabc")

class TestNodeConfigFiles(unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.config_dir_patch = mock.patch.object(global_constants, 'CONFIG_DIR', Path(self.tmpdir.name))
        self.config_dir_patch.start()

    def tearDown(self):
        self.config_dir_patch.stop()
        self.tmpdir.cleanup()
        RuntimeConfig.USE_TESTNET = True

    def test_load_node_config(self):
        path = Path(self.tmpdir.name) / "sans_node_testnet_config.json"
        path.write_text(json.dumps({
            'node_name': 'sansnode',
            'payout_address': '0x' + 'ab' * 20,
            'token_address': '0x' + 'cd' * 20,
            'wait_for_receipt': True,
            'policy': {'cooldown_hours': 1},
        }))

        config = get_node_config()

        self.assertEqual(config, load_node_config(path))
        self.assertEqual(config.node_name, 'sansnode')
        self.assertTrue(config.wait_for_receipt)
        self.assertEqual(config.policy.cooldown, timedelta(hours=1))
        self.assertEqual(config.classifier_url, global_constants.DEFAULT_CLASSIFIER_URL)

    def test_missing_file(self):
        RuntimeConfig.USE_TESTNET = False
        with self.assertRaises(ConfigurationError):
            get_node_config()

    def test_missing_node_name(self):
        path = Path(self.tmpdir.name) / "bad.json"
        path.write_text(json.dumps({'payout_address': None}))
        with self.assertRaises(ConfigurationError):
            load_node_config(path)

class TestCredentialKey(unittest.TestCase):

    def test_node_scoping(self):
        self.assertEqual(CredentialKey.SIGNING_KEY.for_node("sansnode"), "sansnode__evm_private_key")
        self.assertEqual(CredentialKey.POSTGRES.for_node("sansnode"), "sansnode_postgresconnstring")
        self.assertEqual(CredentialKey.HUGGINGFACE.for_node("sansnode"), "huggingface_api_key")

if __name__ == '__main__':
    unittest.main()
