"""
Background log poller feeding fulfillment events into a PendingStore.

Started before a request is submitted so that no event fired between the
submission and the first rendezvous poll is missed. Every matching event is
buffered, whether or not a rendezvous is waiting for its id yet.
"""
import logging
import threading

from core.rendezvous import FulfillmentResult

logger = logging.getLogger('findr.events')

MAX_BACKOFF_SECONDS = 60


def _args(log):
    # indexed args come first, so the request id is always position 0
    return list(log['args'].values())


def _fulfillment(log):
    request_id, response, err = _args(log)[:3]
    return FulfillmentResult.from_response(request_id, response, err)


def _user_callback_error(log):
    request_id, reason = _args(log)[:2]
    return FulfillmentResult.user_callback_error(request_id, reason)


def _user_callback_raw_error(log):
    request_id, data = _args(log)[:2]
    return FulfillmentResult.user_callback_raw_error(request_id, data)


class EventWatcher:
    def __init__(self, bridge, store, poll_interval=2.0, from_block=None):
        self.bridge = bridge
        self.store = store
        self.poll_interval = poll_interval
        self.from_block = from_block
        self._cursor = None
        self._subscriptions = []
        self._shutdown = threading.Event()
        self._thread = None

    def subscriptions(self):
        """(event, converter) pairs for the three fulfillment events."""
        return [
            (self.bridge.oracle.events.UserCallbackError(), _user_callback_error),
            (self.bridge.oracle.events.UserCallbackRawError(), _user_callback_raw_error),
            (self.bridge.consumer.events.AIReviewResponse(), _fulfillment),
        ]

    def start(self):
        if self._thread is not None:
            raise RuntimeError("EventWatcher already started")
        # captured synchronously so the range covers the upcoming submission
        self._cursor = self.from_block if self.from_block is not None else self.bridge.latest_block()
        self._subscriptions = self.subscriptions()
        self._shutdown.clear()
        self._thread = threading.Thread(target=self._loop, daemon=True, name='functions-event-watcher')
        self._thread.start()
        logger.info("Watching fulfillment events from block %d", self._cursor)
        return self

    def stop(self, timeout=5):
        self._shutdown.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    def __enter__(self):
        return self.start()

    def __exit__(self, exc_type, exc, tb):
        self.stop()

    def poll_once(self) -> int:
        """Fetch and record events up to the latest block. Returns the number recorded."""
        latest = self.bridge.latest_block()
        if latest < self._cursor:
            return 0
        logs = []
        for event, convert in self._subscriptions:
            for log in self.bridge.get_logs(event, self._cursor, latest):
                logs.append((log['blockNumber'], log['logIndex'], convert, log))
        # chain order decides which of several same-id events is recorded first
        logs.sort(key=lambda item: (item[0], item[1]))
        recorded = 0
        for _, _, convert, log in logs:
            result = convert(log)
            if self.store.record(result):
                recorded += 1
                logger.info("Received %s for request %s", result.outcome.value, result.request_id)
        self._cursor = latest + 1
        return recorded

    def _loop(self):
        consecutive_errors = 0
        while not self._shutdown.is_set():
            try:
                self.poll_once()
                consecutive_errors = 0
            except Exception as e:
                consecutive_errors += 1
                logger.error("Event poll error (consecutive=%d): %s", consecutive_errors, e)
            delay = self.poll_interval
            if consecutive_errors:
                delay = min(self.poll_interval * (2 ** consecutive_errors), MAX_BACKOFF_SECONDS)
            if self._shutdown.wait(timeout=delay):
                break
