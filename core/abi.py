"""
Minimal ABIs for the contracts this project talks to.
Compiled hardhat artifacts take precedence when present (see FunctionsBridge).
"""


def _event(name, *inputs):
    return {
        "anonymous": False,
        "inputs": [
            {"indexed": indexed, "name": arg, "type": typ} for arg, typ, indexed in inputs
        ],
        "name": name,
        "type": "event",
    }


def _function(name, inputs=(), outputs=(), mutability="nonpayable"):
    return {
        "inputs": [{"name": arg, "type": typ} for arg, typ in inputs],
        "name": name,
        "outputs": [{"name": arg, "type": typ} for arg, typ in outputs],
        "stateMutability": mutability,
        "type": "function",
    }


FUNCTIONS_ORACLE_ABI = [
    _function("getDONPublicKey", outputs=[("", "bytes")], mutability="view"),
    _function("getAllNodePublicKeys", outputs=[("", "address[]"), ("", "bytes[]")], mutability="view"),
    _event("UserCallbackError", ("requestId", "bytes32", True), ("reason", "string", False)),
    _event("UserCallbackRawError", ("requestId", "bytes32", True), ("lowLevelData", "bytes", False)),
]

CONSUMER_ABI = [
    _function("addReview", inputs=[
        ("restaurantId", "uint256"),
        ("review", "string"),
        ("source", "string"),
        ("secrets", "bytes"),
        ("subscriptionId", "uint64"),
        ("gasLimit", "uint32"),
    ], outputs=[("", "bytes32")]),
    _event("RequestSent", ("id", "bytes32", True)),
    _event("RequestFulfilled", ("id", "bytes32", True)),
    _event("AIReviewResponse", ("requestId", "bytes32", True), ("result", "bytes", False), ("err", "bytes", False)),
]

BILLING_REGISTRY_ABI = [
    _function("createSubscription", outputs=[("", "uint64")]),
    _function("addConsumer", inputs=[("subscriptionId", "uint64"), ("consumer", "address")]),
    _function("getSubscription", inputs=[("subscriptionId", "uint64")],
              outputs=[("balance", "uint96"), ("owner", "address"), ("consumers", "address[]")],
              mutability="view"),
    _event("SubscriptionCreated", ("subscriptionId", "uint64", True), ("owner", "address", False)),
]

ERC20_ABI = [
    _function("balanceOf", inputs=[("account", "address")], outputs=[("", "uint256")], mutability="view"),
    _function("approve", inputs=[("spender", "address"), ("amount", "uint256")], outputs=[("", "bool")]),
    _function("transfer", inputs=[("to", "address"), ("amount", "uint256")], outputs=[("", "bool")]),
    _function("allowance", inputs=[("owner", "address"), ("spender", "address")],
              outputs=[("", "uint256")], mutability="view"),
]

LINK_TOKEN_ABI = ERC20_ABI + [
    _function("transferAndCall", inputs=[("to", "address"), ("value", "uint256"), ("data", "bytes")],
              outputs=[("success", "bool")]),
]

RESTAURANT_INFO_ABI = [
    _function("addRestaurant", inputs=[("restaurantId", "uint256"), ("details", "string")]),
    _function("stakeRestaurant", inputs=[("restaurantId", "uint256"), ("amount", "uint256")]),
    _function("unstakeRestaurant", inputs=[("restaurantId", "uint256"), ("amount", "uint256")]),
    _function("claimReward", inputs=[("restaurantId", "uint256")]),
    _function("getRestaurantDetails", inputs=[("restaurantId", "uint256")],
              outputs=[("", "uint256"), ("", "uint256")], mutability="view"),
]

# Artifact paths relative to ARTIFACTS_DIR, as laid out by hardhat
ARTIFACT_PATHS = {
    "FunctionsOracle": "contracts/dev/functions/FunctionsOracle.sol/FunctionsOracle.json",
    "FunctionsBillingRegistry": "contracts/dev/functions/FunctionsBillingRegistry.sol/FunctionsBillingRegistry.json",
    "RestaurantInfo": "contracts/RestaurantInfo.sol/RestaurantInfo.json",
    "LinkToken": "contracts/LinkToken.sol/LinkToken.json",
}

FALLBACK_ABIS = {
    "FunctionsOracle": FUNCTIONS_ORACLE_ABI,
    "FunctionsBillingRegistry": BILLING_REGISTRY_ABI,
    "RestaurantInfo": CONSUMER_ABI + RESTAURANT_INFO_ABI,
    "LinkToken": LINK_TOKEN_ABI,
    "ERC20": ERC20_ABI,
}
