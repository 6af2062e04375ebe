"""
Error taxonomy shared by the services and the CLI.
Every failure is fatal to the invoking command; nothing here is retried.
"""


class FindrError(Exception):
    """Base class for all errors raised by this project."""


class ConfigurationError(FindrError):
    """A required environment variable or secret is missing."""


class ValidationError(FindrError):
    """Input or remote data failed a consistency check."""


class RemoteError(FindrError):
    """An HTTP call, transaction or the oracle network itself failed."""


class ContractRevert(RemoteError):
    def __init__(self, reason, tx_hash=None):
        self.reason = reason
        self.tx_hash = tx_hash
        msg = f"Transaction reverted: {reason}"
        if tx_hash:
            msg += f" (tx {tx_hash})"
        super().__init__(msg)


class FulfillmentTimeout(FindrError, TimeoutError):
    def __init__(self, request_id, timeout):
        self.request_id = request_id
        self.timeout = timeout
        super().__init__(
            f"A response for request {request_id} was not received within "
            f"{timeout:g}s of the request being initiated and has been canceled. "
            f"Your subscription was not charged. Please make a new request."
        )


class CallbackError(FindrError):
    """The oracle responded but the consumer contract's fulfillment failed.

    raw=False: the consumer reverted with a formatted reason string.
    raw=True: the consumer reverted with low-level data only.
    """

    def __init__(self, request_id, message, raw=False):
        self.request_id = request_id
        self.raw = raw
        kind = "Raw error" if raw else "Error"
        super().__init__(
            f"{kind} encountered when calling fulfillRequest in client contract "
            f"for request {request_id}: {message}"
        )
