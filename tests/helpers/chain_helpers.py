"""
Chain helper utilities for tests.
Provides: a throwaway signer key, get_web3(), load_artifact(), send(), deploy_artifact().
"""
import json
import os

from web3 import Web3

# Well-known throwaway key; never funded outside local dev chains
TEST_PRIVATE_KEY = '0x' + '4c' * 32


def get_web3():
    """Get a connected Web3 instance from .env RPC_URL."""
    rpc_url = os.environ.get("RPC_URL", "")
    if not rpc_url:
        raise RuntimeError("RPC_URL not set")
    return Web3(Web3.HTTPProvider(rpc_url))


def load_artifact(name):
    """Hardhat artifact (abi + bytecode) from ARTIFACTS_DIR."""
    artifacts_dir = os.environ.get("ARTIFACTS_DIR", "artifacts")
    path = os.path.join(artifacts_dir, "contracts", f"{name}.sol", f"{name}.json")
    if not os.path.exists(path):
        raise RuntimeError(f"Artifact not found: {path} (compile the contracts first)")
    with open(path) as f:
        return json.load(f)


def send(w3, key, fn):
    """Sign and send a contract call from key; returns the receipt."""
    acct = w3.eth.account.from_key(key)
    tx = fn.build_transaction({
        "from": acct.address,
        "nonce": w3.eth.get_transaction_count(acct.address, "pending"),
    })
    signed = w3.eth.account.sign_transaction(tx, key)
    tx_hash = w3.eth.send_raw_transaction(signed.raw_transaction)
    return w3.eth.wait_for_transaction_receipt(tx_hash, timeout=60)


def deploy_artifact(w3, key, name, *args):
    """Deploy a compiled contract from key; returns the bound contract."""
    artifact = load_artifact(name)
    factory = w3.eth.contract(abi=artifact["abi"], bytecode=artifact["bytecode"])
    receipt = send(w3, key, factory.constructor(*args))
    if receipt["status"] != 1:
        raise RuntimeError(f"Deployment of {name} reverted")
    return w3.eth.contract(address=receipt["contractAddress"], abi=artifact["abi"])

