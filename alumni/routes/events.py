"""
Member-facing event API.

Includes:
- Event listing and detail (public, viewer info when a token is sent)
- Registration and cancellation
- Starting payment for a paid event
"""

import math
from datetime import datetime
from flask import Blueprint, request, jsonify
from sqlalchemy import func, or_

from alumni import db
from alumni.auth import token_required, token_optional, get_current_user
from alumni.models import Event, Attendance
from alumni.contract import STATUS_REGISTERED, EVENT_TYPES, EVENT_STATUSES
from alumni.errors import ValidationError, PermissionDenied, EventNotFound
from alumni.validation import parse_bool, parse_pagination
from alumni.services import registration_service
from alumni.services.payment_service import payment_service

events_bp = Blueprint('events', __name__, url_prefix='/api/events')


def _active_counts(event_ids):
    """Map of event id -> active registrations, in one query."""
    if not event_ids:
        return {}
    return dict(
        db.session.query(Attendance.event_id, func.count(Attendance.id)).filter(
            Attendance.event_id.in_(event_ids),
            Attendance.status == STATUS_REGISTERED
        ).group_by(Attendance.event_id).all()
    )


def _viewer_records(user, event_ids):
    """Map of event id -> the viewer's active Attendance."""
    if not user or not event_ids:
        return {}
    records = Attendance.query.filter(
        Attendance.event_id.in_(event_ids),
        Attendance.user_id == user.id,
        Attendance.status == STATUS_REGISTERED
    ).all()
    return {a.event_id: a for a in records}


def event_summary(event, user=None, attendee_count=None):
    attendance = registration_service.get_active_record(event.id, user.id) if user else None
    return event.to_summary(
        attendance=attendance,
        include_viewer=user is not None,
        attendee_count=attendee_count
    )


@events_bp.route('')
@token_optional
def list_events():
    """
    List public events.

    Query params:
        type: Event type filter
        status: Event status (default: published)
        upcoming: 'true' to only show events that have not started
        search: Text to match in title or description
        page, limit: Pagination (limit max 100)
    """
    page, limit = parse_pagination(request.args)
    user = get_current_user()

    event_type = request.args.get('type')
    status = request.args.get('status', 'published')
    errors = {}
    if event_type and event_type not in EVENT_TYPES:
        errors['type'] = 'Invalid event type'
    if status not in EVENT_STATUSES:
        errors['status'] = 'Invalid status'
    # Drafts are only visible through the admin API
    if status == 'draft':
        errors['status'] = 'Draft events are not listed'
    if errors:
        raise ValidationError(errors)

    query = Event.query.filter(Event.is_public.is_(True), Event.status == status)
    if event_type:
        query = query.filter(Event.event_type == event_type)
    if parse_bool(request.args.get('upcoming')):
        query = query.filter(Event.starts_at >= datetime.utcnow())

    search = request.args.get('search', '').strip()
    if search:
        pattern = f'%{search}%'
        query = query.filter(or_(Event.title.ilike(pattern), Event.description.ilike(pattern)))

    total = query.count()
    events = query.order_by(Event.starts_at.asc()).offset((page - 1) * limit).limit(limit).all()

    event_ids = [e.id for e in events]
    counts = _active_counts(event_ids)
    viewer_records = _viewer_records(user, event_ids)

    return jsonify({
        'success': True,
        'events': [
            e.to_summary(
                attendance=viewer_records.get(e.id),
                include_viewer=user is not None,
                attendee_count=counts.get(e.id, 0)
            )
            for e in events
        ],
        'pagination': {
            'page': page,
            'limit': limit,
            'total': total,
            'pages': math.ceil(total / limit),
        }
    })


@events_bp.route('/<int:event_id>')
@token_optional
def get_event(event_id):
    """Event summary."""
    user = get_current_user()
    event = db.session.get(Event, event_id)

    is_staff = bool(user and user.is_staff)
    if not event or (event.status == 'draft' and not is_staff):
        raise EventNotFound()
    if not event.is_public and not is_staff:
        raise PermissionDenied('Access denied')

    return jsonify({'success': True, 'event': event_summary(event, user)})


@events_bp.route('/<int:event_id>/register', methods=['POST'])
@token_required
def register(event_id):
    """
    Register the current user for an event.

    Returns 200 with the new attendee count and event summary, or a 4xx body
    with a machine-readable 'reason'.
    """
    user = get_current_user()
    attendance, count = registration_service.register(event_id, user.id)
    event = db.session.get(Event, event_id)

    return jsonify({
        'success': True,
        'message': 'Successfully registered for event',
        'attendeeCount': count,
        'attendance': attendance.to_dict(),
        'event': event.to_summary(attendance=attendance, include_viewer=True, attendee_count=count),
    })


@events_bp.route('/<int:event_id>/register', methods=['DELETE'])
@token_required
def cancel_registration(event_id):
    """Cancel the current user's registration."""
    user = get_current_user()
    attendance, count = registration_service.cancel(event_id, user.id)
    event = db.session.get(Event, event_id)

    return jsonify({
        'success': True,
        'message': 'Registration cancelled',
        'attendeeCount': count,
        'attendance': attendance.to_dict(),
        'event': event.to_summary(attendance=None, include_viewer=True, attendee_count=count),
    })


@events_bp.route('/<int:event_id>/payment', methods=['POST'])
@token_required
def start_payment(event_id):
    """Create (or resume) a payment for the current user's registration."""
    user = get_current_user()
    result = payment_service.create_event_payment(event_id, user)

    return jsonify({
        'success': True,
        'paymentId': result['payment'].id,
        'clientSecret': result['client_secret'],
        'payment': result['payment'].to_dict(),
    })
