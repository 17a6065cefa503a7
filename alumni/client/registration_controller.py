"""
Optimistic registration for event cards.

Card phases, from the viewer's side:

    not-registered -> registering -> registered -> cancelling -> not-registered

Registering is optimistic. The card shows the viewer as registered and bumps
the attendee count before the request goes out. Each attempt gets its own id
and its own local record, so a rollback removes exactly the record it added
and never one belonging to another attempt that may since have been confirmed.

Cancelling is not optimistic. The card waits for the server before dropping
the registration, so a failed cancel never shows a viewer as unregistered
while they still hold a (possibly paid) seat.
"""

import copy
import logging
import threading
import uuid
from concurrent.futures import ThreadPoolExecutor, Future
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional

from alumni import contract
from alumni.client.api_client import ApiRejected, TransportError
from alumni.client.context import ViewerContext

logger = logging.getLogger(__name__)

NOT_REGISTERED = 'not-registered'
REGISTERING = 'registering'
REGISTERED = 'registered'
CANCELLING = 'cancelling'


@dataclass
class LocalAttendee:
    """The viewer's registration as the card currently shows it."""
    user_id: int
    attempt_id: Optional[str] = None  # None when loaded from the server
    attendance_id: Optional[int] = None
    confirmed: bool = False
    registered_at: datetime = field(default_factory=datetime.utcnow)


@dataclass
class RegistrationAttempt:
    attempt_id: str
    event_id: int
    started_at: datetime = field(default_factory=datetime.utcnow)


@dataclass
class RegistrationOutcome:
    success: bool
    event_id: int
    reason: Optional[str] = None
    message: Optional[str] = None
    attempt: Optional[RegistrationAttempt] = None


@dataclass
class EventCardState:
    event_id: int
    attendee_count: int = 0
    capacity: Optional[int] = None
    attendees: List[LocalAttendee] = field(default_factory=list)
    pending: Dict[str, RegistrationAttempt] = field(default_factory=dict)
    cancelling: bool = False
    error_reason: Optional[str] = None
    error_message: Optional[str] = None

    @property
    def is_registered(self) -> bool:
        return bool(self.attendees)

    @property
    def in_flight(self) -> bool:
        return bool(self.pending) or self.cancelling

    @property
    def phase(self) -> str:
        if self.cancelling:
            return CANCELLING
        if self.pending:
            return REGISTERING
        if self.attendees:
            return REGISTERED
        return NOT_REGISTERED


class RegistrationController:
    """
    Drives event cards for one viewer.

    Args:
        viewer: The signed-in user
        api: Object with register(event_id) and cancel(event_id), usually EventsApiClient
        listener: Called with a snapshot of the card after every change
        executor: Runs network calls for register_async
    """

    def __init__(self, viewer: ViewerContext, api, listener: Callable = None, executor=None):
        self.viewer = viewer
        self.api = api
        self.listener = listener
        self._executor = executor
        self._owns_executor = False
        self._cards: Dict[int, EventCardState] = {}
        self._lock = threading.RLock()

    # ============== STATE ==============

    def card(self, event_id: int) -> EventCardState:
        """Snapshot of a card's state."""
        with self._lock:
            return copy.deepcopy(self._card(event_id))

    def _card(self, event_id: int) -> EventCardState:
        if event_id not in self._cards:
            self._cards[event_id] = EventCardState(event_id=event_id)
        return self._cards[event_id]

    def _notify(self, card: EventCardState):
        if self.listener:
            self.listener(copy.deepcopy(card))

    def load(self, summary: dict) -> bool:
        """
        Replace a card's state with the server's event summary.

        Skipped (returns False) while a request for the card is in flight,
        so a late refresh can't wipe out an optimistic record that still
        needs to be confirmed or rolled back.
        """
        with self._lock:
            card = self._card(summary['id'])
            if card.in_flight:
                return False

            card.attendee_count = summary.get('attendeeCount', 0)
            card.capacity = summary.get('capacity')
            viewer_info = summary.get('viewer') or {}
            if viewer_info.get('isRegistered'):
                card.attendees = [LocalAttendee(
                    user_id=self.viewer.user_id,
                    attendance_id=viewer_info.get('attendanceId'),
                    confirmed=True
                )]
            else:
                card.attendees = []
            snapshot = copy.deepcopy(card)

        self._notify(snapshot)
        return True

    reconcile = load

    # ============== REGISTRATION ==============

    def begin_registration(self, event_id: int) -> RegistrationAttempt:
        """Optimistically show the viewer as registered."""
        attempt = RegistrationAttempt(attempt_id=uuid.uuid4().hex, event_id=event_id)

        with self._lock:
            card = self._card(event_id)
            card.pending[attempt.attempt_id] = attempt
            card.attendees.append(LocalAttendee(
                user_id=self.viewer.user_id,
                attempt_id=attempt.attempt_id
            ))
            card.attendee_count += 1
            card.error_reason = None
            card.error_message = None
            snapshot = copy.deepcopy(card)

        logger.debug(f"Optimistic register {attempt.attempt_id} for event {event_id}")
        self._notify(snapshot)
        return attempt

    def confirm_registration(self, attempt: RegistrationAttempt, response: dict = None):
        """The server accepted the attempt. The optimistic state already matches."""
        with self._lock:
            card = self._card(attempt.event_id)
            if card.pending.pop(attempt.attempt_id, None) is None:
                return
            for attendee in card.attendees:
                if attendee.attempt_id == attempt.attempt_id:
                    attendee.confirmed = True
                    attendance = (response or {}).get('attendance') or {}
                    attendee.attendance_id = attendance.get('id')
            snapshot = copy.deepcopy(card)

        self._notify(snapshot)

    def rollback_registration(self, attempt: RegistrationAttempt, reason: str, message: str = None):
        """Undo exactly the given attempt and surface why it failed."""
        with self._lock:
            card = self._card(attempt.event_id)
            card.pending.pop(attempt.attempt_id, None)

            remaining = [a for a in card.attendees if a.attempt_id != attempt.attempt_id]
            if len(remaining) != len(card.attendees):
                card.attendees = remaining
                card.attendee_count -= 1

            card.error_reason = reason
            card.error_message = message or contract.message_for(reason)
            snapshot = copy.deepcopy(card)

        logger.info(f"Rolled back register {attempt.attempt_id} for event {attempt.event_id}: {reason}")
        self._notify(snapshot)

    def _send_registration(self, attempt: RegistrationAttempt) -> RegistrationOutcome:
        try:
            response = self.api.register(attempt.event_id)
        except ApiRejected as e:
            self.rollback_registration(attempt, e.reason, e.message)
            return RegistrationOutcome(False, attempt.event_id, e.reason, e.message, attempt)
        except TransportError as e:
            self.rollback_registration(attempt, e.reason, e.message)
            return RegistrationOutcome(False, attempt.event_id, e.reason, e.message, attempt)
        except Exception:
            self.rollback_registration(attempt, contract.REASON_TRANSPORT_ERROR)
            raise

        self.confirm_registration(attempt, response)
        return RegistrationOutcome(True, attempt.event_id, attempt=attempt)

    def register(self, event_id: int) -> RegistrationOutcome:
        """Register and wait for the server's verdict."""
        attempt = self.begin_registration(event_id)
        return self._send_registration(attempt)

    def register_async(self, event_id: int) -> Future:
        """
        Register without blocking.

        The optimistic update is applied before this returns; the future
        resolves to a RegistrationOutcome once the server has answered.
        """
        attempt = self.begin_registration(event_id)
        return self._get_executor().submit(self._send_registration, attempt)

    # ============== CANCELLATION ==============

    def cancel(self, event_id: int) -> RegistrationOutcome:
        """Cancel after the server confirms. Nothing changes locally on failure."""
        with self._lock:
            card = self._card(event_id)
            if not any(a.confirmed for a in card.attendees):
                reason = contract.REASON_NOT_REGISTERED
                card.error_reason = reason
                card.error_message = contract.message_for(reason)
                snapshot = copy.deepcopy(card)
                refused = RegistrationOutcome(False, event_id, reason, card.error_message)
            else:
                refused = None
                card.cancelling = True
                card.error_reason = None
                card.error_message = None
                snapshot = copy.deepcopy(card)
        self._notify(snapshot)
        if refused:
            return refused

        try:
            response = self.api.cancel(event_id)
        except (ApiRejected, TransportError) as e:
            with self._lock:
                card = self._card(event_id)
                card.cancelling = False
                card.error_reason = e.reason
                card.error_message = e.message
                snapshot = copy.deepcopy(card)
            logger.info(f"Cancel for event {event_id} failed: {e.reason}")
            self._notify(snapshot)
            return RegistrationOutcome(False, event_id, e.reason, e.message)
        except Exception:
            with self._lock:
                self._card(event_id).cancelling = False
            raise

        with self._lock:
            card = self._card(event_id)
            card.cancelling = False
            removed = [a for a in card.attendees if a.confirmed]
            card.attendees = [a for a in card.attendees if not a.confirmed]
            if 'attendeeCount' in response:
                # Server count plus our own attempts it hasn't seen yet
                card.attendee_count = response['attendeeCount'] + len(card.pending)
            else:
                card.attendee_count -= len(removed)
            snapshot = copy.deepcopy(card)

        self._notify(snapshot)
        return RegistrationOutcome(True, event_id)

    # ============== EXECUTOR ==============

    def _get_executor(self):
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix='registration')
                self._owns_executor = True
            return self._executor

    def close(self):
        """Wait for outstanding requests and stop the executor we created."""
        if self._owns_executor and self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
            self._owns_executor = False
