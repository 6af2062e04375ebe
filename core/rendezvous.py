"""
Request-fulfillment rendezvous.

A submitted Functions request is resolved exactly once: by a fulfillment
event recorded in the PendingStore, or by the timeout. The poll timer and the
timeout timer race to set a single completion slot; the loser is a no-op and
both timers are cancelled on every exit path.
"""
import enum
import logging
import threading
import time
from dataclasses import dataclass, field

from core.errors import CallbackError, FulfillmentTimeout, RemoteError

logger = logging.getLogger('findr.rendezvous')


def normalize_request_id(value) -> str:
    """Request ids arrive as bytes32 from logs and as hex strings from users."""
    if isinstance(value, (bytes, bytearray)):
        return '0x' + bytes(value).hex()
    text = str(value).lower()
    if not text.startswith('0x'):
        text = '0x' + text
    return text


class RequestStatus(enum.Enum):
    PENDING = 'pending'
    FULFILLED = 'fulfilled'
    FAILED = 'failed'
    TIMED_OUT = 'timed_out'


class Outcome(enum.Enum):
    RESPONSE = 'response'
    USER_CALLBACK_ERROR = 'user_callback_error'
    USER_CALLBACK_RAW_ERROR = 'user_callback_raw_error'
    ERROR = 'error'


@dataclass
class FunctionsRequest:
    request_id: str
    tx_hash: str = ''
    submitted_at: float = field(default_factory=time.time)
    status: RequestStatus = RequestStatus.PENDING

    def __post_init__(self):
        self.request_id = normalize_request_id(self.request_id)


@dataclass(frozen=True)
class FulfillmentResult:
    request_id: str
    outcome: Outcome
    response: bytes = b''
    error: bytes = b''
    message: str = ''

    @classmethod
    def from_response(cls, request_id, response, err):
        request_id = normalize_request_id(request_id)
        response, err = bytes(response or b''), bytes(err or b'')
        if err:
            return cls(request_id, Outcome.ERROR, response=response, error=err,
                       message=err.decode('utf-8', errors='replace'))
        return cls(request_id, Outcome.RESPONSE, response=response)

    @classmethod
    def user_callback_error(cls, request_id, reason):
        return cls(normalize_request_id(request_id), Outcome.USER_CALLBACK_ERROR, message=str(reason))

    @classmethod
    def user_callback_raw_error(cls, request_id, data):
        data = bytes(data or b'')
        return cls(normalize_request_id(request_id), Outcome.USER_CALLBACK_RAW_ERROR,
                   error=data, message=data.decode('utf-8', errors='replace'))

    @property
    def response_int(self):
        """Response decoded as a big-endian uint256, None when empty."""
        if not self.response:
            return None
        return int.from_bytes(self.response, 'big')

    @property
    def succeeded(self) -> bool:
        return self.outcome is Outcome.RESPONSE

    def raise_for_outcome(self):
        if self.outcome is Outcome.USER_CALLBACK_ERROR:
            raise CallbackError(self.request_id, self.message, raw=False)
        if self.outcome is Outcome.USER_CALLBACK_RAW_ERROR:
            raise CallbackError(self.request_id, self.message, raw=True)
        if self.outcome is Outcome.ERROR:
            raise RemoteError(f"Error message returned to client contract: \"{self.message}\"")
        return self


class PendingStore:
    """Fulfillment results keyed by request id.

    First write wins: a later event for an id that already has a result is
    dropped. Entries are evicted by the rendezvous when a session ends.
    """

    def __init__(self):
        self._results = {}
        self._lock = threading.Lock()

    def record(self, result: FulfillmentResult) -> bool:
        with self._lock:
            existing = self._results.get(result.request_id)
            if existing is not None:
                logger.warning(
                    "Ignoring %s for request %s: already recorded %s",
                    result.outcome.value, result.request_id, existing.outcome.value,
                )
                return False
            self._results[result.request_id] = result
            return True

    def get(self, request_id):
        with self._lock:
            return self._results.get(normalize_request_id(request_id))

    def discard(self, request_id):
        with self._lock:
            return self._results.pop(normalize_request_id(request_id), None)

    def clear(self):
        with self._lock:
            self._results.clear()

    def __contains__(self, request_id):
        return self.get(request_id) is not None

    def __len__(self):
        with self._lock:
            return len(self._results)


class _Session:
    """One wait on one request id: two timers, one completion slot."""

    def __init__(self, store, request_id, timeout, poll_interval):
        self.store = store
        self.request_id = request_id
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.done = threading.Event()
        self.result = None
        self.error = None
        self.polls = 0
        self._lock = threading.Lock()
        self._poll_timer = None
        self._timeout_timer = None

    def start(self):
        self._timeout_timer = threading.Timer(self.timeout, self._expire)
        self._timeout_timer.daemon = True
        self._timeout_timer.start()
        self._tick()

    def _resolve(self, result=None, error=None) -> bool:
        with self._lock:
            if self.done.is_set():
                return False
            self.result = result
            self.error = error
            self.done.set()
        self.cancel()
        return True

    def _tick(self):
        if self.done.is_set():
            return
        self.polls += 1
        try:
            result = self.store.get(self.request_id)
        except Exception as e:
            self._resolve(error=e)
            return
        if result is not None:
            self._resolve(result=result)
            return
        with self._lock:
            if self.done.is_set():
                return
            self._poll_timer = threading.Timer(self.poll_interval, self._tick)
            self._poll_timer.daemon = True
            self._poll_timer.start()

    def _expire(self):
        self._resolve(error=FulfillmentTimeout(self.request_id, self.timeout))

    def cancel(self):
        for timer in (self._poll_timer, self._timeout_timer):
            if timer is not None:
                timer.cancel()


class FulfillmentRendezvous:
    def __init__(self, store: PendingStore, timeout=300.0, poll_interval=1.0):
        if timeout <= 0 or poll_interval <= 0:
            raise ValueError("timeout and poll_interval must be positive")
        self.store = store
        self.timeout = timeout
        self.poll_interval = poll_interval

    def wait(self, request) -> FulfillmentResult:
        """Block until the request is fulfilled or the timeout elapses.

        Accepts a FunctionsRequest (its status is updated) or a bare id.
        Raises FulfillmentTimeout when no event arrives in time.
        """
        if not isinstance(request, FunctionsRequest):
            request = FunctionsRequest(request)
        session = _Session(self.store, request.request_id, self.timeout, self.poll_interval)
        logger.info("Waiting for fulfillment of request %s (timeout %gs)",
                    request.request_id, self.timeout)
        try:
            session.start()
            session.done.wait()
        finally:
            # interrupted waits resolve here so late timer callbacks stay no-ops
            session._resolve(error=RemoteError("Wait interrupted"))
            self.store.discard(request.request_id)

        if session.error is not None:
            if isinstance(session.error, FulfillmentTimeout):
                request.status = RequestStatus.TIMED_OUT
                logger.error("Request %s timed out after %gs", request.request_id, self.timeout)
            else:
                request.status = RequestStatus.FAILED
            raise session.error

        result = session.result
        request.status = RequestStatus.FULFILLED if result.succeeded else RequestStatus.FAILED
        logger.info("Request %s fulfilled with %s after %d poll(s)",
                    request.request_id, result.outcome.value, session.polls)
        return result
