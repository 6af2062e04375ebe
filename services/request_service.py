"""
End-to-end Functions request: secrets -> watch -> submit -> rendezvous -> cleanup.
"""
import logging

from config import Config
from core.rendezvous import FulfillmentRendezvous, Outcome, PendingStore
from services.event_watcher import EventWatcher
from services.review_scoring import load_request_source

logger = logging.getLogger('findr.request')


class FunctionsRequestService:
    def __init__(self, bridge, secrets_service, gist_client=None,
                 timeout=None, poll_interval=None, event_poll_interval=None,
                 delete_gist=None):
        self.bridge = bridge
        self.secrets_service = secrets_service
        self.gist_client = gist_client
        self.timeout = timeout or Config.FULFILLMENT_TIMEOUT_SECONDS
        self.poll_interval = poll_interval or Config.POLL_INTERVAL_SECONDS
        self.event_poll_interval = event_poll_interval or Config.EVENT_POLL_INTERVAL_SECONDS
        self.delete_gist = Config.DELETE_GIST_AFTER_REQUEST if delete_gist is None else delete_gist

    def run(self, restaurant_id, review, secrets=None, source=None, subscription_id=None):
        """Submit a review-scoring request and wait for its fulfillment.

        Returns the FulfillmentResult of a successful response; raises
        FulfillmentTimeout, CallbackError or RemoteError otherwise.
        """
        source = source or load_request_source()
        bundle = self.secrets_service.prepare(secrets)
        logger.info("Encrypted secrets: %s", bundle.encrypted)

        # fresh per invocation; the watcher starts before submission
        store = PendingStore()
        watcher = EventWatcher(self.bridge, store, poll_interval=self.event_poll_interval)
        try:
            watcher.start()
            request = self.bridge.send_request(
                restaurant_id,
                review,
                source,
                bundle.encrypted,
                subscription_id=subscription_id,
            )
            rendezvous = FulfillmentRendezvous(store, timeout=self.timeout, poll_interval=self.poll_interval)
            result = rendezvous.wait(request)
        finally:
            watcher.stop()
            store.clear()
            if bundle.needs_cleanup and self.delete_gist and self.gist_client is not None:
                self.gist_client.delete_gist(bundle.gist_url)

        self._report(result)
        return result.raise_for_outcome()

    def _report(self, result):
        if result.outcome is Outcome.USER_CALLBACK_ERROR:
            logger.error(
                "Error encountered when calling fulfillRequest in client contract. "
                "Ensure the fulfillRequest function in the client contract is correct "
                "and the gas limit is sufficient. %s", result.message,
            )
        elif result.outcome is Outcome.USER_CALLBACK_RAW_ERROR:
            logger.error("Raw error in contract request fulfillment: %s", result.message)
        else:
            if result.response:
                logger.info("Response returned to client contract: %s", result.response_int)
            if result.error:
                logger.error("Error message returned to client contract: \"%s\"", result.message)
