"""
RestaurantInfo staking/reward contract client.
Restaurants are staked with FINDR tokens; stakers claim rewards per restaurant.
"""
import logging

from web3 import Web3

from config import Config

logger = logging.getLogger('findr.restaurant')


class RestaurantInfoClient:
    def __init__(self, bridge, address=None, token_address=None):
        self.bridge = bridge
        self.address = Web3.to_checksum_address(address or Config.require('RESTAURANT_INFO_ADDRESS'))
        self.token_address = Web3.to_checksum_address(token_address or Config.require('FINDR_TOKEN_ADDRESS'))
        self.contract = bridge.contract('RestaurantInfo', self.address)
        self.token = bridge.contract('ERC20', self.token_address)

    def add_restaurant(self, restaurant_id, details):
        receipt = self.bridge.send_tx(self.contract.functions.addRestaurant(restaurant_id, details))
        logger.info("Added restaurant %s", restaurant_id)
        return receipt

    def approve(self, amount):
        return self.bridge.send_tx(self.token.functions.approve(self.address, amount))

    def allowance(self, owner=None) -> int:
        owner = Web3.to_checksum_address(owner or self.bridge.address)
        return self.token.functions.allowance(owner, self.address).call()

    def stake(self, restaurant_id, amount, approve=False):
        """Stake FINDR on a restaurant; approve=True grants the allowance first."""
        if approve:
            self.approve(amount)
        receipt = self.bridge.send_tx(self.contract.functions.stakeRestaurant(restaurant_id, amount))
        logger.info("Staked %d on restaurant %s", amount, restaurant_id)
        return receipt

    def unstake(self, restaurant_id, amount):
        receipt = self.bridge.send_tx(self.contract.functions.unstakeRestaurant(restaurant_id, amount))
        logger.info("Unstaked %d from restaurant %s", amount, restaurant_id)
        return receipt

    def claim_reward(self, restaurant_id):
        receipt = self.bridge.send_tx(self.contract.functions.claimReward(restaurant_id))
        logger.info("Claimed reward for restaurant %s", restaurant_id)
        return receipt

    def get_restaurant_details(self, restaurant_id):
        """(restaurant_id, staked FINDR) as stored on-chain."""
        restaurant, staked = self.contract.functions.getRestaurantDetails(restaurant_id).call()
        return restaurant, staked

    def token_balance(self, address=None) -> int:
        address = Web3.to_checksum_address(address or self.bridge.address)
        return self.token.functions.balanceOf(address).call()
