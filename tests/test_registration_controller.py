"""
Tests for the optimistic client controller.

The API is replaced by FakeEventsApi, which answers from a queue of scripted
responses. Threaded tests use an Event to hold the server answer until the
test has inspected the optimistic state.
"""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from alumni.client import (
    ViewerContext, RegistrationController, ApiRejected, TransportError,
)
from alumni.client.registration_controller import (
    NOT_REGISTERED, REGISTERING, REGISTERED, CANCELLING,
)

EVENT_ID = 7


class FakeEventsApi:
    """Stands in for EventsApiClient. Each call pops the next scripted answer."""

    def __init__(self):
        self.register_answers = []
        self.cancel_answers = []
        self.calls = []
        self.gate = None

    def _answer(self, answers):
        if self.gate is not None:
            self.gate.wait(timeout=5)
        answer = answers.pop(0)
        if isinstance(answer, Exception):
            raise answer
        return answer

    def register(self, event_id):
        self.calls.append(('register', event_id))
        return self._answer(self.register_answers)

    def cancel(self, event_id):
        self.calls.append(('cancel', event_id))
        return self._answer(self.cancel_answers)


def summary(attendee_count=3, capacity=10, registered=False, attendance_id=None):
    return {
        'id': EVENT_ID,
        'attendeeCount': attendee_count,
        'capacity': capacity,
        'viewer': {'isRegistered': registered, 'attendanceId': attendance_id, 'paymentStatus': None},
    }


@pytest.fixture()
def api():
    return FakeEventsApi()


@pytest.fixture()
def snapshots():
    return []


@pytest.fixture()
def controller(api, snapshots):
    viewer = ViewerContext(user_id=42, token='token-42', display_name='Layla Ahmed')
    controller = RegistrationController(viewer, api, listener=snapshots.append)
    yield controller
    controller.close()


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

def test_load_sets_card_from_summary(controller):
    assert controller.load(summary(attendee_count=5, registered=True, attendance_id=11))

    card = controller.card(EVENT_ID)
    assert card.attendee_count == 5
    assert card.capacity == 10
    assert card.phase == REGISTERED
    assert card.attendees[0].attendance_id == 11
    assert card.attendees[0].confirmed


def test_new_card_is_not_registered(controller):
    card = controller.card(EVENT_ID)
    assert card.phase == NOT_REGISTERED
    assert card.attendee_count == 0


def test_card_returns_a_copy(controller):
    controller.load(summary())
    controller.card(EVENT_ID).attendee_count = 99
    assert controller.card(EVENT_ID).attendee_count == 3


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------

def test_optimistic_update_applied_before_request(controller, api, snapshots):
    controller.load(summary(attendee_count=3))
    api.register_answers.append({'success': True, 'attendeeCount': 4, 'attendance': {'id': 91}})

    outcome = controller.register(EVENT_ID)

    assert outcome.success
    optimistic = snapshots[1]
    assert optimistic.phase == REGISTERING
    assert optimistic.attendee_count == 4
    assert optimistic.is_registered

    card = controller.card(EVENT_ID)
    assert card.phase == REGISTERED
    assert card.attendee_count == 4
    assert card.attendees[0].attendance_id == 91
    assert card.pending == {}


@pytest.mark.parametrize('reason', [
    'capacity-exceeded',
    'deadline-passed',
    'already-registered',
    'event-not-found',
    'registration-not-required',
])
def test_rejection_restores_count_and_shows_reason(controller, api, reason):
    controller.load(summary(attendee_count=3))
    api.register_answers.append(ApiRejected(409, reason))

    outcome = controller.register(EVENT_ID)

    assert not outcome.success
    assert outcome.reason == reason
    card = controller.card(EVENT_ID)
    assert card.attendee_count == 3
    assert card.phase == NOT_REGISTERED
    assert card.error_reason == reason
    assert card.error_message


def test_server_message_is_shown(controller, api):
    controller.load(summary())
    api.register_answers.append(ApiRejected(409, 'capacity-exceeded', 'Sold out, sorry'))

    controller.register(EVENT_ID)

    assert controller.card(EVENT_ID).error_message == 'Sold out, sorry'


def test_timeout_rolls_back(controller, api):
    controller.load(summary(attendee_count=3))
    api.register_answers.append(TransportError('timeout'))

    outcome = controller.register(EVENT_ID)

    assert outcome.reason == 'timeout'
    card = controller.card(EVENT_ID)
    assert card.attendee_count == 3
    assert card.phase == NOT_REGISTERED
    assert card.error_message == 'The server took too long to respond'


def test_unexpected_error_rolls_back_and_propagates(controller, api):
    controller.load(summary(attendee_count=3))
    api.register_answers.append(KeyError('boom'))

    with pytest.raises(KeyError):
        controller.register(EVENT_ID)

    card = controller.card(EVENT_ID)
    assert card.attendee_count == 3
    assert card.error_reason == 'transport-error'


def test_new_attempt_clears_previous_error(controller, api):
    controller.load(summary())
    api.register_answers.extend([ApiRejected(409, 'capacity-exceeded'), {'success': True}])

    controller.register(EVENT_ID)
    controller.register(EVENT_ID)

    card = controller.card(EVENT_ID)
    assert card.error_reason is None
    assert card.phase == REGISTERED


def test_rollback_removes_only_its_own_record(controller):
    controller.load(summary(attendee_count=3))
    first = controller.begin_registration(EVENT_ID)
    second = controller.begin_registration(EVENT_ID)
    assert controller.card(EVENT_ID).attendee_count == 5

    controller.confirm_registration(second, {'attendance': {'id': 12}})
    controller.rollback_registration(first, 'already-registered')

    card = controller.card(EVENT_ID)
    assert card.attendee_count == 4
    assert [a.attempt_id for a in card.attendees] == [second.attempt_id]
    assert card.attendees[0].confirmed
    assert card.phase == REGISTERED


def test_rollback_is_applied_once(controller):
    controller.load(summary(attendee_count=3))
    attempt = controller.begin_registration(EVENT_ID)

    controller.rollback_registration(attempt, 'timeout')
    controller.rollback_registration(attempt, 'timeout')

    assert controller.card(EVENT_ID).attendee_count == 3


def test_confirm_after_rollback_is_ignored(controller):
    controller.load(summary(attendee_count=3))
    attempt = controller.begin_registration(EVENT_ID)
    controller.rollback_registration(attempt, 'timeout')

    controller.confirm_registration(attempt, {'attendance': {'id': 5}})

    card = controller.card(EVENT_ID)
    assert card.attendee_count == 3
    assert not card.is_registered


def test_load_is_ignored_while_registering(controller):
    controller.load(summary(attendee_count=3))
    controller.begin_registration(EVENT_ID)

    assert controller.load(summary(attendee_count=3)) is False
    assert controller.card(EVENT_ID).attendee_count == 4


def test_register_async_returns_before_server_answers(controller, api):
    controller.load(summary(attendee_count=3))
    api.gate = threading.Event()
    api.register_answers.append(ApiRejected(409, 'capacity-exceeded'))

    future = controller.register_async(EVENT_ID)

    card = controller.card(EVENT_ID)
    assert card.phase == REGISTERING
    assert card.attendee_count == 4

    api.gate.set()
    outcome = future.result(timeout=5)

    assert outcome.reason == 'capacity-exceeded'
    assert controller.card(EVENT_ID).attendee_count == 3


def test_concurrent_attempts_end_consistent(api, snapshots):
    viewer = ViewerContext(user_id=42, token='t')
    executor = ThreadPoolExecutor(max_workers=2)
    controller = RegistrationController(viewer, api, listener=snapshots.append, executor=executor)
    controller.load(summary(attendee_count=3))

    api.gate = threading.Event()
    api.register_answers.extend([
        {'success': True, 'attendance': {'id': 1}},
        ApiRejected(409, 'already-registered'),
    ])

    futures = [controller.register_async(EVENT_ID), controller.register_async(EVENT_ID)]
    assert controller.card(EVENT_ID).attendee_count == 5

    api.gate.set()
    outcomes = sorted(f.result(timeout=5).success for f in futures)
    executor.shutdown(wait=True)

    assert outcomes == [False, True]
    card = controller.card(EVENT_ID)
    assert card.attendee_count == 4
    assert len(card.attendees) == 1
    assert card.phase == REGISTERED


def test_close_leaves_injected_executor_running(api):
    executor = ThreadPoolExecutor(max_workers=1)
    controller = RegistrationController(ViewerContext(1, 't'), api, executor=executor)
    controller.close()

    assert executor.submit(lambda: 'still running').result(timeout=5) == 'still running'
    executor.shutdown()


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------

def test_cancel_waits_for_server(controller, api, snapshots):
    controller.load(summary(attendee_count=4, registered=True, attendance_id=3))
    api.cancel_answers.append({'success': True, 'attendeeCount': 3})

    outcome = controller.cancel(EVENT_ID)

    assert outcome.success
    # While the request was out the viewer still showed as registered
    in_flight = snapshots[1]
    assert in_flight.phase == CANCELLING
    assert in_flight.attendee_count == 4
    assert in_flight.is_registered

    card = controller.card(EVENT_ID)
    assert card.phase == NOT_REGISTERED
    assert card.attendee_count == 3


def test_failed_cancel_keeps_registration(controller, api):
    controller.load(summary(attendee_count=4, registered=True, attendance_id=3))
    api.cancel_answers.append(TransportError('transport-error'))

    outcome = controller.cancel(EVENT_ID)

    assert not outcome.success
    card = controller.card(EVENT_ID)
    assert card.phase == REGISTERED
    assert card.attendee_count == 4
    assert card.error_reason == 'transport-error'


def test_cancel_without_registration_skips_request(controller, api, snapshots):
    controller.load(summary())

    outcome = controller.cancel(EVENT_ID)

    assert outcome.reason == 'not-registered'
    assert api.calls == []
    assert snapshots[-1].error_reason == 'not-registered'
    assert snapshots[-1].cancelling is False


def test_cancel_uses_server_count(controller, api):
    controller.load(summary(attendee_count=4, registered=True))
    # Others registered meanwhile
    api.cancel_answers.append({'success': True, 'attendeeCount': 8})

    controller.cancel(EVENT_ID)

    assert controller.card(EVENT_ID).attendee_count == 8
