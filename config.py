import os

from core.errors import ConfigurationError


def _flag(name, default='false'):
    return os.environ.get(name, default).lower() in ('true', '1', 'yes')


class Config:
    # Chain (Ethereum Sepolia)
    RPC_URL = os.environ.get('RPC_URL', '')
    QUICKNODE_API_KEY = os.environ.get('QUICKNODE_API_KEY', '')
    QUICKNODE_URL_TEMPLATE = os.environ.get(
        'QUICKNODE_URL_TEMPLATE',
        'https://alien-wild-friday.ethereum-sepolia.discover.quiknode.pro/{key}',
    )
    DEPLOYER_PRIVATE_KEY = os.environ.get('DEPLOYER_PRIVATE_KEY', '')
    ARTIFACTS_DIR = os.environ.get('ARTIFACTS_DIR', 'artifacts')

    # Contracts
    CONSUMER_ADDRESS = os.environ.get('CONSUMER_ADDRESS', '')
    ORACLE_ADDRESS = os.environ.get('ORACLE_ADDRESS', '0x649a2C205BE7A3d5e99206CEEFF30c794f0E31EC')
    BILLING_REGISTRY_ADDRESS = os.environ.get(
        'BILLING_REGISTRY_ADDRESS', '0x3c79f56407DCB9dc9b852D139a317246f43750Cc')
    LINK_TOKEN_ADDRESS = os.environ.get('LINK_TOKEN_ADDRESS', '0x779877A7B0D9E8603169DdbD7836e478b4624789')
    RESTAURANT_INFO_ADDRESS = os.environ.get('RESTAURANT_INFO_ADDRESS', '')
    FINDR_TOKEN_ADDRESS = os.environ.get('FINDR_TOKEN_ADDRESS', '')

    # Functions request
    SUBSCRIPTION_ID = int(os.environ.get('SUBSCRIPTION_ID') or '0')
    CALLBACK_GAS_LIMIT = int(os.environ.get('CALLBACK_GAS_LIMIT') or '300000')
    REQUEST_GAS_LIMIT = int(os.environ.get('REQUEST_GAS_LIMIT') or '5500000')
    VERIFICATION_BLOCKS = int(os.environ.get('VERIFICATION_BLOCKS') or '2')
    FULFILLMENT_TIMEOUT_SECONDS = float(os.environ.get('FULFILLMENT_TIMEOUT_SECONDS') or '300')
    POLL_INTERVAL_SECONDS = float(os.environ.get('POLL_INTERVAL_SECONDS') or '1')
    EVENT_POLL_INTERVAL_SECONDS = float(os.environ.get('EVENT_POLL_INTERVAL_SECONDS') or '2')

    # Subscription funding (1 LINK = 10^18 Juels)
    LINK_AMOUNT = os.environ.get('LINK_AMOUNT', '1')
    FUND_ON_SUBSCRIPTION = _flag('FUND_ON_SUBSCRIPTION', 'true')

    # Secrets hosting
    GITHUB_API_TOKEN = os.environ.get('GITHUB_API_TOKEN', '')
    DELETE_GIST_AFTER_REQUEST = _flag('DELETE_GIST_AFTER_REQUEST')

    # Scoring API (OpenAI completions)
    OPENAI_API_KEY = os.environ.get('OPENAI_API_KEY', '')
    OPENAI_BASE_URL = os.environ.get('OPENAI_BASE_URL', 'https://api.openai.com/v1')
    OPENAI_MODEL = os.environ.get('OPENAI_MODEL', 'model-detect-v2')

    LOG_FORMAT = os.environ.get('LOG_FORMAT', 'json')

    @classmethod
    def require(cls, name):
        """Return a configured value, failing at first use when it is unset."""
        value = getattr(cls, name, None)
        if value in (None, '', 0):
            raise ConfigurationError(f"{name} environment variable not set")
        return value

    @classmethod
    def rpc_url(cls):
        """RPC endpoint: RPC_URL wins, otherwise the QuickNode URL built from its key."""
        if cls.RPC_URL:
            return cls.RPC_URL
        if cls.QUICKNODE_API_KEY:
            return cls.QUICKNODE_URL_TEMPLATE.format(key=cls.QUICKNODE_API_KEY)
        raise ConfigurationError("RPC_URL or QUICKNODE_API_KEY environment variable not set")
