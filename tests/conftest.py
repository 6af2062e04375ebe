import pytest

from config import Config
from tests.helpers.chain_helpers import TEST_PRIVATE_KEY


def pytest_addoption(parser):
    parser.addoption('--onchain', action='store_true', default=False,
                     help='Run tests that send transactions to a live RPC node')


def pytest_configure(config):
    config.addinivalue_line('markers', 'onchain: requires a live chain (run with --onchain)')


def pytest_collection_modifyitems(config, items):
    if config.getoption('--onchain'):
        return
    skip = pytest.mark.skip(reason='needs --onchain')
    for item in items:
        if 'onchain' in item.keywords:
            item.add_marker(skip)


@pytest.fixture
def env_config(monkeypatch):
    """Deterministic Config for unit tests, independent of the local .env."""
    values = {
        'RPC_URL': 'http://127.0.0.1:8545',
        'QUICKNODE_API_KEY': '',
        'DEPLOYER_PRIVATE_KEY': TEST_PRIVATE_KEY,
        'CONSUMER_ADDRESS': '0x1111111111111111111111111111111111111111',
        'ORACLE_ADDRESS': '0x649a2C205BE7A3d5e99206CEEFF30c794f0E31EC',
        'BILLING_REGISTRY_ADDRESS': '0x3c79f56407DCB9dc9b852D139a317246f43750Cc',
        'LINK_TOKEN_ADDRESS': '0x779877A7B0D9E8603169DdbD7836e478b4624789',
        'SUBSCRIPTION_ID': 42,
        'CALLBACK_GAS_LIMIT': 300000,
        'REQUEST_GAS_LIMIT': 5500000,
        'VERIFICATION_BLOCKS': 2,
        'GITHUB_API_TOKEN': 'ghp_test',
        'OPENAI_API_KEY': 'sk-test',
        'DELETE_GIST_AFTER_REQUEST': False,
        'FUND_ON_SUBSCRIPTION': True,
        'LINK_AMOUNT': '1',
    }
    for name, value in values.items():
        monkeypatch.setattr(Config, name, value)
    return Config
