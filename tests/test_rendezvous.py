"""Request-fulfillment rendezvous: resolution, timeout, isolation, cleanup."""
import threading
import time
from unittest.mock import MagicMock

import pytest

from core.errors import CallbackError, FulfillmentTimeout, RemoteError
from core.rendezvous import (
    FulfillmentRendezvous, FulfillmentResult, FunctionsRequest, Outcome,
    PendingStore, RequestStatus, normalize_request_id,
)

REQ_A = '0x' + 'aa' * 32
REQ_B = '0x' + 'bb' * 32


def _response(request_id, value=73):
    return FulfillmentResult.from_response(request_id, value.to_bytes(32, 'big'), b'')


def _record_later(store, result, delay=0.05):
    timer = threading.Timer(delay, store.record, args=(result,))
    timer.start()
    return timer


def _live_timers():
    return [t for t in threading.enumerate() if isinstance(t, threading.Timer) and t.is_alive()]


class TestFulfillmentResult:

    def test_response_event_without_error(self):
        result = _response(bytes.fromhex('aa' * 32))
        assert result.request_id == REQ_A
        assert result.outcome is Outcome.RESPONSE
        assert result.response_int == 73
        assert result.succeeded

    def test_response_event_with_error_bytes(self):
        result = FulfillmentResult.from_response(REQ_A, b'', b'Request failed')
        assert result.outcome is Outcome.ERROR
        assert result.message == 'Request failed'
        assert result.response_int is None
        with pytest.raises(RemoteError, match='Request failed'):
            result.raise_for_outcome()

    def test_user_callback_error_is_formatted(self):
        result = FulfillmentResult.user_callback_error(REQ_A, 'out of gas')
        with pytest.raises(CallbackError) as exc:
            result.raise_for_outcome()
        assert exc.value.raw is False
        assert 'out of gas' in str(exc.value)

    def test_user_callback_raw_error_decodes_bytes(self):
        result = FulfillmentResult.user_callback_raw_error(REQ_A, b'panic')
        assert result.message == 'panic'
        with pytest.raises(CallbackError) as exc:
            result.raise_for_outcome()
        assert exc.value.raw is True

    def test_successful_outcome_returns_self(self):
        result = _response(REQ_A)
        assert result.raise_for_outcome() is result

    def test_normalize_request_id(self):
        assert normalize_request_id('AA' * 32) == REQ_A
        assert normalize_request_id('0x' + 'AA' * 32) == REQ_A
        assert normalize_request_id(b'\xaa' * 32) == REQ_A


class TestPendingStore:

    def test_first_write_wins(self):
        store = PendingStore()
        first = _response(REQ_A, 1)
        assert store.record(first) is True
        assert store.record(FulfillmentResult.user_callback_error(REQ_A, 'late')) is False
        assert store.get(REQ_A) is first
        assert len(store) == 1

    def test_discard_and_clear(self):
        store = PendingStore()
        store.record(_response(REQ_A))
        store.record(_response(REQ_B))
        assert store.discard(REQ_A.upper().replace('0X', '0x')) is not None
        assert REQ_A not in store
        store.clear()
        assert len(store) == 0


class TestFulfillmentRendezvous:

    def test_resolves_when_event_arrives_before_timeout(self):
        store = PendingStore()
        request = FunctionsRequest(REQ_A)
        _record_later(store, _response(REQ_A))

        result = FulfillmentRendezvous(store, timeout=2, poll_interval=0.01).wait(request)

        assert result.response_int == 73
        assert request.status is RequestStatus.FULFILLED

    def test_result_recorded_before_wait_resolves_immediately(self):
        store = PendingStore()
        store.record(_response(REQ_A))
        start = time.monotonic()
        result = FulfillmentRendezvous(store, timeout=2, poll_interval=1).wait(REQ_A)
        assert result.request_id == REQ_A
        assert time.monotonic() - start < 0.5

    def test_does_not_resolve_without_event(self):
        store = PendingStore()
        store.record(_response(REQ_B))
        start = time.monotonic()
        with pytest.raises(FulfillmentTimeout):
            FulfillmentRendezvous(store, timeout=0.2, poll_interval=0.01).wait(REQ_A)
        assert time.monotonic() - start >= 0.2

    def test_timeout_marks_request_and_stops_polling(self):
        store = MagicMock(wraps=PendingStore())
        request = FunctionsRequest(REQ_A)

        with pytest.raises(FulfillmentTimeout) as exc:
            FulfillmentRendezvous(store, timeout=0.1, poll_interval=0.01).wait(request)

        assert exc.value.request_id == REQ_A
        assert isinstance(exc.value, TimeoutError)
        assert request.status is RequestStatus.TIMED_OUT
        polls = store.get.call_count
        time.sleep(0.1)
        assert store.get.call_count == polls

    def test_late_event_after_timeout_has_no_effect(self):
        store = PendingStore()
        request = FunctionsRequest(REQ_A)
        with pytest.raises(FulfillmentTimeout):
            FulfillmentRendezvous(store, timeout=0.05, poll_interval=0.01).wait(request)
        store.record(_response(REQ_A))
        time.sleep(0.05)
        assert request.status is RequestStatus.TIMED_OUT

    def test_timers_cancelled_after_success(self):
        store = PendingStore()
        store.record(_response(REQ_A))
        FulfillmentRendezvous(store, timeout=5, poll_interval=0.01).wait(REQ_A)
        time.sleep(0.05)
        assert _live_timers() == []

    def test_duplicate_events_resolve_once_with_first(self):
        store = PendingStore()
        store.record(FulfillmentResult.user_callback_error(REQ_A, 'first'))
        store.record(_response(REQ_A))
        request = FunctionsRequest(REQ_A)

        result = FulfillmentRendezvous(store, timeout=1, poll_interval=0.01).wait(request)

        assert result.outcome is Outcome.USER_CALLBACK_ERROR
        assert request.status is RequestStatus.FAILED

    def test_entry_evicted_when_session_ends(self):
        store = PendingStore()
        store.record(_response(REQ_A))
        FulfillmentRendezvous(store, timeout=1, poll_interval=0.01).wait(REQ_A)
        assert REQ_A not in store

    def test_store_exception_fails_session_and_releases_timers(self):
        store = MagicMock()
        store.get.side_effect = RuntimeError('event decode failed')
        request = FunctionsRequest(REQ_A)

        with pytest.raises(RuntimeError, match='event decode failed'):
            FulfillmentRendezvous(store, timeout=5, poll_interval=0.01).wait(request)

        assert request.status is RequestStatus.FAILED
        store.discard.assert_called_once_with(REQ_A)
        time.sleep(0.05)
        assert _live_timers() == []

    def test_concurrent_sessions_are_isolated(self):
        store = PendingStore()
        rendezvous = FulfillmentRendezvous(store, timeout=0.3, poll_interval=0.01)
        outcomes = {}

        def wait(request_id):
            try:
                outcomes[request_id] = rendezvous.wait(request_id).outcome
            except FulfillmentTimeout:
                outcomes[request_id] = 'timeout'

        threads = [threading.Thread(target=wait, args=(rid,)) for rid in (REQ_A, REQ_B)]
        for t in threads:
            t.start()
        _record_later(store, _response(REQ_B), delay=0.05)
        for t in threads:
            t.join(timeout=2)

        assert outcomes == {REQ_A: 'timeout', REQ_B: Outcome.RESPONSE}

    def test_rejects_non_positive_durations(self):
        with pytest.raises(ValueError):
            FulfillmentRendezvous(PendingStore(), timeout=0)
        with pytest.raises(ValueError):
            FulfillmentRendezvous(PendingStore(), poll_interval=-1)
