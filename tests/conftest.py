"""
Pytest configuration for the launchpad off-chain core

Fixtures for settings, launch configuration, scripts and an in-memory chain.
"""

from pathlib import Path

import pycardano as pc
import pytest
from dotenv import load_dotenv

from launchpad_offchain.chain_context import SLOT_CONFIGS
from launchpad_offchain.config import LaunchConfig, ProjectInfo, Settings, TxInputRef
from launchpad_offchain.enums import NetworkType

from .mocks import InMemoryIndexer, make_launch_scripts

LAUNCH_TX_ID = "1" * 64
START_TIME = 1_760_000_000_000
DAY_MS = 24 * 60 * 60 * 1000

OWNER_PKH = bytes.fromhex("0c" * 28)
DAO_PKH = bytes.fromhex("da" * 28)
PROJECT_POLICY = "ab" * 28
PRESALE_POLICY = "bc" * 28


def testnet_address(pkh: bytes) -> str:
    return pc.Address(payment_part=pc.VerificationKeyHash(pkh), network=pc.Network.TESTNET).encode()


# Load test environment variables
@pytest.fixture(scope="session", autouse=True)
def load_env():
    """Load environment variables for testing"""
    env_file = Path(__file__).parent / ".env"
    if env_file.exists():
        load_dotenv(env_file)

    yield


@pytest.fixture
def settings():
    """Deployment settings independent of any .env file"""
    return Settings(
        _env_file=None,
        network=NetworkType.PREPROD,
        dao_fee_receiver_address=testnet_address(DAO_PKH),
        dao_admin_pub_key_hash=DAO_PKH.hex(),
        ref_script_carrier_validator_hash="c1" * 28,
        fail_proof_validator_hash="f1" * 28,
        fail_proof_policy_hash="f2" * 28,
        wr_pool_validator_hash="01" * 28,
        wr_factory_validator_hash="02" * 28,
        wr_pool_currency_symbol="03" * 28,
        sundae_pool_script_hash="04" * 28,
        sundae_settings_currency_symbol="05" * 28,
        dao_fee_numerator=3,
        dao_fee_denominator=100,
        launch_collateral=5_000_000,
        node_ada=3_000_000,
        commit_fold_fee_ada=10_000_000,
        oil_ada=2_000_000,
        vesting_period_duration=30 * DAY_MS,
        vesting_period_duration_to_first_unlock=DAY_MS,
        vesting_period_installments=4,
        vesting_validator_hash="06" * 28,
    )


@pytest.fixture
def slot_config():
    return SLOT_CONFIGS[NetworkType.PREPROD]


@pytest.fixture
def launch_config_data():
    """Valid launch configuration, by field name"""
    end_time = START_TIME + 3 * DAY_MS
    return {
        "owner_bech32_address": testnet_address(OWNER_PKH),
        "split_bps": 5_000,
        "wr_pool_validator_hash": "01" * 28,
        "wr_factory_validator_hash": "02" * 28,
        "wr_pool_currency_symbol": "03" * 28,
        "sundae_pool_script_hash": "04" * 28,
        "sundae_fee_tolerance": 10,
        "sundae_settings_currency_symbol": "05" * 28,
        "start_time": START_TIME,
        "end_time": end_time,
        "project_token": PROJECT_POLICY + "50524f4a",
        "raising_token": "lovelace",
        "project_min_commitment": 1_000_000_000,
        "project_max_commitment": 5_000_000_000,
        "total_tokens": 1_000_000,
        "tokens_to_distribute": 500_000,
        "raised_tokens_pool_part_percentage": 40,
        "dao_fee_numerator": 3,
        "dao_fee_denominator": 100,
        "dao_fee_receiver_bech32_address": testnet_address(DAO_PKH),
        "dao_admin_pub_key_hash": DAO_PKH.hex(),
        "collateral": 5_000_000,
        "starter": TxInputRef(tx_hash="5" * 64, output_index=0),
        "vesting_period_duration": 30 * DAY_MS,
        "vesting_period_duration_to_first_unlock": DAY_MS,
        "vesting_period_installments": 4,
        "vesting_period_start": end_time,
        "vesting_validator_hash": "06" * 28,
        "presale_tier_cs": PRESALE_POLICY,
        "presale_tier_start_time": START_TIME,
        "default_start_time": START_TIME + DAY_MS,
        "presale_tier_min_commitment": 10_000_000,
        "default_tier_min_commitment": 5_000_000,
        "presale_tier_max_commitment": 1_000_000_000,
        "default_tier_max_commitment": 500_000_000,
        "node_ada": 3_000_000,
        "commit_fold_fee_ada": 10_000_000,
        "oil_ada": 2_000_000,
    }


@pytest.fixture
def make_launch_config(launch_config_data):
    """Factory building a LaunchConfig with overrides"""

    def factory(**overrides) -> LaunchConfig:
        return LaunchConfig(**{**launch_config_data, **overrides})

    return factory


@pytest.fixture
def launch_config(make_launch_config):
    return make_launch_config()


@pytest.fixture
def project_info():
    return ProjectInfo(
        title="Sample Project",
        description="A project raising funds through the launchpad. " * 3,
        url="https://example.com",
        logo_url="https://example.com/logo.png",
        tokenomics_url="https://example.com/tokenomics",
    )


@pytest.fixture
def launch_scripts():
    return make_launch_scripts()


@pytest.fixture
def indexer(launch_scripts, settings):
    """In-memory chain with the carriers, the head node and the first tokens holder of a launch"""
    chain = InMemoryIndexer(network=settings.cardano_network)
    chain.deploy_launch(LAUNCH_TX_ID, launch_scripts, settings)
    return chain
