"""
Functions subscription management: create, fund with LINK, authorize consumers.
"""
import logging
from decimal import Decimal, InvalidOperation

from eth_abi import encode
from web3 import Web3
from web3.logs import DISCARD

from config import Config
from core.errors import RemoteError, ValidationError

logger = logging.getLogger('findr.subscription')

JUELS_PER_LINK = 10 ** 18


def link_to_juels(amount) -> int:
    try:
        juels = Decimal(str(amount)) * JUELS_PER_LINK
    except InvalidOperation as e:
        raise ValidationError(f"Invalid LINK amount: {amount!r}") from e
    if not juels.is_finite() or juels <= 0 or juels != juels.to_integral_value():
        raise ValidationError(f"Invalid LINK amount: {amount!r}")
    return int(juels)


class SubscriptionService:
    def __init__(self, bridge):
        self.bridge = bridge

    def create_subscription(self) -> int:
        receipt = self.bridge.send_tx(self.bridge.registry.functions.createSubscription())
        events = self.bridge.registry.events.SubscriptionCreated().process_receipt(receipt, errors=DISCARD)
        if not events:
            raise RemoteError("SubscriptionCreated event not found in receipt")
        subscription_id = int(events[0]['args']['subscriptionId'])
        logger.info("Subscription created with ID: %d", subscription_id)
        return subscription_id

    def link_balance(self, address=None) -> int:
        address = Web3.to_checksum_address(address or self.bridge.address)
        return self.bridge.link_token.functions.balanceOf(address).call()

    def fund(self, subscription_id, link_amount) -> int:
        """Send LINK to the registry for subscription_id. Returns the Juels sent."""
        juels = link_to_juels(link_amount)
        balance = self.link_balance()
        if juels > balance:
            raise ValidationError(f"Insufficient LINK balance: have {balance} Juels, need {juels}")

        logger.info("Funding with %d Juels (1 LINK = 10^18 Juels)", juels)
        fn = self.bridge.link_token.functions.transferAndCall(
            Web3.to_checksum_address(self.bridge.registry.address),
            juels,
            encode(['uint64'], [int(subscription_id)]),
        )
        self.bridge.send_tx(fn)
        logger.info("Subscription %s funded with %d Juels", subscription_id, juels)
        return juels

    def add_consumer(self, subscription_id, consumer):
        logger.info("Adding consumer contract address %s to subscription %s", consumer, subscription_id)
        fn = self.bridge.registry.functions.addConsumer(
            int(subscription_id), Web3.to_checksum_address(consumer))
        receipt = self.bridge.send_tx(fn)
        logger.info("Authorized consumer contract: %s", consumer)
        return receipt

    def get_subscription(self, subscription_id) -> dict:
        balance, owner, consumers = self.bridge.registry.functions.getSubscription(
            int(subscription_id)).call()
        return {
            'subscription_id': int(subscription_id),
            'balance': balance,
            'owner': owner,
            'consumers': list(consumers),
        }

    def setup(self, subscription_id=None, consumer=None, link_amount=None, fund=None) -> dict:
        """Optionally fund the subscription, then authorize the consumer contract."""
        subscription_id = subscription_id or Config.require('SUBSCRIPTION_ID')
        consumer = consumer or Config.require('CONSUMER_ADDRESS')
        link_amount = link_amount or Config.LINK_AMOUNT
        fund = Config.FUND_ON_SUBSCRIPTION if fund is None else fund

        funded = 0
        if fund:
            funded = self.fund(subscription_id, link_amount)
        else:
            # balance is checked even when funding is skipped
            juels = link_to_juels(link_amount)
            if juels > self.link_balance():
                raise ValidationError("Insufficient LINK balance")
        self.add_consumer(subscription_id, consumer)
        return {'subscription_id': subscription_id, 'consumer': consumer, 'funded_juels': funded}
