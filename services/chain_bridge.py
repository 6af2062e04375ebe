"""
FunctionsBridge: web3.py wrapper for the Functions oracle, billing registry,
LINK token and the RestaurantInfo consumer contract.
Handles tx signing, confirmation waits, receipt event parsing and log reads.
"""
import json
import logging
import os
import time

from eth_account import Account
from web3 import Web3
from web3.exceptions import ContractLogicError, TimeExhausted, TransactionNotFound, Web3RPCError
from web3.logs import DISCARD

from config import Config
from core.abi import ARTIFACT_PATHS, FALLBACK_ABIS
from core.errors import ContractRevert, RemoteError, ValidationError
from core.rendezvous import FunctionsRequest

logger = logging.getLogger('findr.chain')


class FunctionsBridge:
    def __init__(self, rpc_url=None, private_key=None, artifacts_dir=None):
        self.rpc_url = rpc_url or Config.rpc_url()
        self.private_key = private_key or Config.require('DEPLOYER_PRIVATE_KEY')
        self.artifacts_dir = artifacts_dir or Config.ARTIFACTS_DIR
        self.w3 = Web3(Web3.HTTPProvider(self.rpc_url))
        self.account = Account.from_key(self.private_key)

        self._contracts = {}

    def __repr__(self):
        return f"FunctionsBridge(rpc_url={self.rpc_url!r}, account={self.account.address})"

    @property
    def address(self):
        return self.account.address

    def _load_abi(self, contract_name):
        """Load ABI from hardhat output, falling back to the bundled one."""
        rel = ARTIFACT_PATHS.get(contract_name)
        if rel:
            abi_path = os.path.join(self.artifacts_dir, rel)
            if os.path.exists(abi_path):
                with open(abi_path) as f:
                    return json.load(f).get('abi', [])
        return FALLBACK_ABIS[contract_name]

    def contract(self, contract_name, address):
        key = (contract_name, address.lower())
        if key not in self._contracts:
            self._contracts[key] = self.w3.eth.contract(
                address=Web3.to_checksum_address(address),
                abi=self._load_abi(contract_name),
            )
        return self._contracts[key]

    @property
    def oracle(self):
        return self.contract('FunctionsOracle', Config.require('ORACLE_ADDRESS'))

    @property
    def consumer(self):
        return self.contract('RestaurantInfo', Config.require('CONSUMER_ADDRESS'))

    @property
    def registry(self):
        return self.contract('FunctionsBillingRegistry', Config.require('BILLING_REGISTRY_ADDRESS'))

    @property
    def link_token(self):
        return self.contract('LinkToken', Config.require('LINK_TOKEN_ADDRESS'))

    def is_connected(self):
        try:
            return self.w3.is_connected()
        except Exception:
            return False

    # --- Read functions ---

    def get_don_public_key(self) -> str:
        """DON public key as hex without the 0x prefix."""
        key = self.oracle.functions.getDONPublicKey().call()
        return bytes(key).hex()

    def get_node_addresses(self) -> list:
        node_addresses, _ = self.oracle.functions.getAllNodePublicKeys().call()
        return list(node_addresses)

    def latest_block(self) -> int:
        return self.w3.eth.block_number

    def get_logs(self, event, from_block, to_block):
        return event.get_logs(from_block=from_block, to_block=to_block)

    # --- Write functions ---

    def send_tx(self, fn, gas=None, value=0, confirmations=1, timeout=120):
        """Sign, send and wait for a contract call. Reverts are never retried."""
        try:
            params = {
                'from': self.account.address,
                'nonce': self.w3.eth.get_transaction_count(self.account.address),
                'value': value,
            }
            if gas:
                params['gas'] = gas
            tx = fn.build_transaction(params)
            signed = self.account.sign_transaction(tx)
            tx_hash = self.w3.eth.send_raw_transaction(signed.raw_transaction)
        except ContractLogicError as e:
            raise ContractRevert(_revert_reason(e)) from e
        except Web3RPCError as e:
            raise RemoteError(f"Transaction rejected: {e}") from e
        logger.info("Waiting %d block(s) for transaction %s to be confirmed...",
                    confirmations, Web3.to_hex(tx_hash))
        receipt = self.wait_confirmations(tx_hash, confirmations, timeout=timeout)
        if receipt['status'] != 1:
            raise ContractRevert("status 0", tx_hash=Web3.to_hex(tx_hash))
        return receipt

    def wait_confirmations(self, tx_hash, confirmations=1, timeout=120):
        """Wait until the tx's block plus (confirmations - 1) blocks are mined."""
        try:
            self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=timeout)
        except TimeExhausted as e:
            raise RemoteError(f"Transaction {Web3.to_hex(tx_hash)} not mined after {timeout}s") from e
        deadline = time.monotonic() + timeout
        while True:
            try:
                receipt = self.w3.eth.get_transaction_receipt(tx_hash)
            except TransactionNotFound:
                # reorged out: keep waiting for it to be re-included
                receipt = None
            if receipt is not None:
                mined = self.w3.eth.block_number - receipt['blockNumber'] + 1
                if mined >= confirmations:
                    return receipt
            if time.monotonic() > deadline:
                raise RemoteError(
                    f"Transaction {Web3.to_hex(tx_hash)} not confirmed by {confirmations} blocks after {timeout}s"
                )
            time.sleep(2)

    def send_request(self, restaurant_id, review, source, encrypted_secrets='0x',
                     subscription_id=None, callback_gas_limit=None, request_gas=None,
                     confirmations=None) -> FunctionsRequest:
        """Submit a Functions request through the consumer's addReview.

        Parameter order is fixed by the consumer contract.
        """
        subscription_id = subscription_id or Config.require('SUBSCRIPTION_ID')
        fn = self.consumer.functions.addReview(
            restaurant_id,
            review,
            source,
            _to_bytes(encrypted_secrets or '0x'),
            subscription_id,
            callback_gas_limit or Config.CALLBACK_GAS_LIMIT,
        )
        receipt = self.send_tx(
            fn,
            gas=request_gas or Config.REQUEST_GAS_LIMIT,
            confirmations=confirmations or Config.VERIFICATION_BLOCKS,
        )
        events = self.consumer.events.RequestSent().process_receipt(receipt, errors=DISCARD)
        if not events:
            raise RemoteError("RequestSent event not found in receipt")
        request = FunctionsRequest(
            request_id=events[0]['args']['id'],
            tx_hash=Web3.to_hex(receipt['transactionHash']),
        )
        logger.info("Request %s initiated", request.request_id)
        return request


def _to_bytes(value):
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if not isinstance(value, str) or not value.startswith('0x'):
        raise ValidationError(f"Expected 0x-prefixed hex bytes, got {value!r}")
    return bytes.fromhex(value[2:])


def _revert_reason(error):
    message = getattr(error, 'message', None) or str(error)
    return message.replace('execution reverted: ', '')


# Singleton: constructed lazily, fails on missing env vars at first use
_bridge_instance = None


def get_bridge() -> FunctionsBridge:
    global _bridge_instance
    if _bridge_instance is None:
        _bridge_instance = FunctionsBridge()
    return _bridge_instance
