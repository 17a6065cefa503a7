"""
Event registration rules.

The server is the authority on who holds a seat. Registration checks, in order:
event exists, registration is taken, deadline has not passed, a seat is free,
the user is not already registered. Each refusal raises its own
RegistrationError subclass.

Capacity is enforced by a single conditional UPDATE on the event's
registered_count cache, issued in the same transaction that inserts the
attendance record. Two requests racing for the last seat cannot both see a
matching row, so the loser gets CapacityExceeded without any application lock.
"""

from datetime import datetime
from flask import current_app
from sqlalchemy import or_, update, func
from sqlalchemy.exc import IntegrityError

from alumni import db
from alumni.models import Event, Attendance
from alumni.contract import (
    STATUS_REGISTERED, STATUS_ATTENDED, STATUS_CANCELLED,
    PAYMENT_PENDING, PAYMENT_PAID,
)
from alumni.errors import (
    EventNotFound, RegistrationNotRequired, DeadlinePassed,
    CapacityExceeded, AlreadyRegistered, NotRegistered,
)


def attendee_count(event_id: int) -> int:
    """Count of active (registered) records for an event."""
    return Attendance.query.filter_by(event_id=event_id, status=STATUS_REGISTERED).count()


def get_active_record(event_id: int, user_id: int):
    return Attendance.query.filter_by(
        event_id=event_id,
        user_id=user_id,
        status=STATUS_REGISTERED
    ).first()


def registration_history(event_id: int, user_id: int) -> list:
    """All records for a user on an event, oldest first."""
    return Attendance.query.filter_by(
        event_id=event_id,
        user_id=user_id
    ).order_by(Attendance.registered_at.asc(), Attendance.id.asc()).all()


def _get_registrable_event(event_id: int) -> Event:
    event = db.session.get(Event, event_id)
    # Drafts and private events do not exist as far as members are concerned
    if not event or not event.is_published or not event.is_public:
        raise EventNotFound()
    return event


def _claim_seat(event: Event) -> bool:
    """Atomically take one seat. Returns False when the event is full."""
    result = db.session.execute(
        update(Event)
        .where(Event.id == event.id)
        .where(or_(Event.capacity.is_(None), Event.registered_count < Event.capacity))
        .values(registered_count=Event.registered_count + 1)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def _release_seat(event_id: int):
    db.session.execute(
        update(Event)
        .where(Event.id == event_id)
        .where(Event.registered_count > 0)
        .values(registered_count=Event.registered_count - 1)
        .execution_options(synchronize_session=False)
    )


def register(event_id: int, user_id: int, now: datetime = None):
    """
    Register a user for an event.

    Args:
        event_id: Event to register for
        user_id: Registering user
        now: Current time (naive UTC), for deadline checks

    Returns:
        tuple: (attendance: Attendance, attendee_count: int)

    Raises:
        EventNotFound, RegistrationNotRequired, DeadlinePassed,
        CapacityExceeded, AlreadyRegistered
    """
    now = now or datetime.utcnow()
    event = _get_registrable_event(event_id)

    if not event.registration_required:
        raise RegistrationNotRequired()

    if event.deadline_passed(now):
        raise DeadlinePassed()

    if not _claim_seat(event):
        db.session.rollback()
        raise CapacityExceeded()

    if get_active_record(event_id, user_id):
        db.session.rollback()
        raise AlreadyRegistered()

    attendance = Attendance(
        event_id=event_id,
        user_id=user_id,
        status=STATUS_REGISTERED,
        registered_at=now,
        payment_status=PAYMENT_PAID if event.is_free else PAYMENT_PENDING
    )
    db.session.add(attendance)

    try:
        db.session.commit()
    except IntegrityError:
        # A concurrent request for the same user won the unique active index
        db.session.rollback()
        raise AlreadyRegistered()

    count = attendee_count(event_id)
    current_app.logger.info(f"User {user_id} registered for event {event_id} ({count} attending)")
    return attendance, count


def cancel(event_id: int, user_id: int, now: datetime = None):
    """
    Cancel a user's active registration. The record is kept with status cancelled.

    Returns:
        tuple: (attendance: Attendance, attendee_count: int)

    Raises:
        EventNotFound, NotRegistered
    """
    now = now or datetime.utcnow()
    event = db.session.get(Event, event_id)
    if not event:
        raise EventNotFound()

    attendance = get_active_record(event_id, user_id)
    if not attendance:
        raise NotRegistered()

    attendance.status = STATUS_CANCELLED
    attendance.cancelled_at = now
    _release_seat(event_id)
    db.session.commit()

    count = attendee_count(event_id)
    current_app.logger.info(f"User {user_id} cancelled registration for event {event_id} ({count} attending)")
    return attendance, count


def mark_attended(event_id: int, user_id: int, now: datetime = None) -> Attendance:
    """Check a registered user in at the door."""
    now = now or datetime.utcnow()
    event = db.session.get(Event, event_id)
    if not event:
        raise EventNotFound()

    attendance = get_active_record(event_id, user_id)
    if not attendance:
        raise NotRegistered()

    attendance.status = STATUS_ATTENDED
    attendance.attended_at = now
    _release_seat(event_id)
    db.session.commit()

    current_app.logger.info(f"User {user_id} checked in to event {event_id}")
    return attendance


def reconcile_registered_counts(event_ids: list = None) -> list:
    """
    Recompute each event's registered_count from its attendance records.

    Returns:
        list of dicts with 'event_id', 'stored' and 'actual' for every event that drifted
    """
    actual_counts = dict(
        db.session.query(Attendance.event_id, func.count(Attendance.id))
        .filter(Attendance.status == STATUS_REGISTERED)
        .group_by(Attendance.event_id)
        .all()
    )

    query = Event.query
    if event_ids:
        query = query.filter(Event.id.in_(event_ids))

    corrected = []
    for event in query.all():
        actual = actual_counts.get(event.id, 0)
        if event.registered_count != actual:
            corrected.append({
                'event_id': event.id,
                'stored': event.registered_count,
                'actual': actual,
            })
            event.registered_count = actual

    db.session.commit()

    if corrected:
        current_app.logger.warning(f"Reconciled registered_count drift on {len(corrected)} event(s)")
    return corrected
