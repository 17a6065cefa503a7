import csv
import io
from flask import Blueprint, request, jsonify, Response, current_app

from alumni import db
from alumni.auth import staff_required, admin_required, get_current_user
from alumni.models import Event, Attendance, User, Payment
from alumni.contract import ATTENDANCE_STATUSES, STATUS_REGISTERED
from alumni.errors import ValidationError, EventNotFound, ApiError
from alumni.validation import parse_event_payload, parse_bool, parse_pagination
from alumni.services import registration_service, reporting_service
from alumni.services.reminder_jobs import send_event_reminders
from alumni.services.payment_service import payment_service

admin_bp = Blueprint('admin', __name__, url_prefix='/api/admin')


class EventHasRegistrations(ApiError):
    status_code = 409
    reason = 'event-has-registrations'


def get_event_or_404(event_id):
    event = db.session.get(Event, event_id)
    if not event:
        raise EventNotFound()
    return event


# ============== EVENTS ==============

@admin_bp.route('/events')
@staff_required
def list_events():
    """All events including drafts, newest first."""
    page, limit = parse_pagination(request.args)
    query = Event.query
    status = request.args.get('status')
    if status:
        query = query.filter(Event.status == status)

    pagination = query.order_by(Event.starts_at.desc()).paginate(
        page=page, per_page=limit, error_out=False
    )

    return jsonify({
        'success': True,
        'events': [e.to_summary() for e in pagination.items],
        'pagination': {
            'page': page,
            'limit': limit,
            'total': pagination.total,
            'pages': pagination.pages,
        }
    })


@admin_bp.route('/events', methods=['POST'])
@admin_required
def create_event():
    """Create an event. New events start as drafts unless a status is given."""
    values = parse_event_payload(request.get_json(silent=True))

    event = Event(organizer_id=get_current_user().id, registered_count=0, **values)
    db.session.add(event)
    db.session.commit()

    current_app.logger.info(f"Event {event.id} created by user {get_current_user().id}")
    return jsonify({
        'success': True,
        'message': 'Event created successfully',
        'event': event.to_summary(),
    }), 201


@admin_bp.route('/events/<int:event_id>', methods=['PUT'])
@admin_required
def update_event(event_id):
    """Update any subset of event fields."""
    event = get_event_or_404(event_id)
    values = parse_event_payload(request.get_json(silent=True), event=event)

    # Capacity can't drop below the seats already taken
    if values.get('capacity') is not None:
        active = event.attendee_count
        if values['capacity'] < active:
            raise ValidationError({
                'capacity': f'Capacity cannot be lower than current registrations ({active})'
            })

    for column, value in values.items():
        setattr(event, column, value)
    db.session.commit()

    current_app.logger.info(f"Event {event.id} updated: {', '.join(sorted(values))}")
    return jsonify({
        'success': True,
        'message': 'Event updated successfully',
        'event': event.to_summary(),
    })


@admin_bp.route('/events/<int:event_id>/publish', methods=['POST'])
@staff_required
def publish_event(event_id):
    event = get_event_or_404(event_id)
    event.status = 'published'
    db.session.commit()
    return jsonify({'success': True, 'event': event.to_summary()})


@admin_bp.route('/events/<int:event_id>', methods=['DELETE'])
@admin_required
def delete_event(event_id):
    """
    Delete an event that nobody has registered for.

    Events with registrations keep their history; cancel them instead
    (PUT with status 'cancelled').
    """
    event = get_event_or_404(event_id)

    if event.attendances.count() > 0:
        raise EventHasRegistrations(
            'Event has registrations. Set its status to cancelled instead of deleting it.'
        )

    db.session.delete(event)
    db.session.commit()

    current_app.logger.info(f"Event {event_id} deleted")
    return jsonify({'success': True, 'message': 'Event deleted'})


# ============== ATTENDEES ==============

def _attendee_rows(event, status=None):
    query = db.session.query(Attendance, User).join(User, Attendance.user_id == User.id).filter(
        Attendance.event_id == event.id
    )
    if status:
        if status not in ATTENDANCE_STATUSES:
            raise ValidationError({'status': 'Invalid status'})
        query = query.filter(Attendance.status == status)
    return query.order_by(Attendance.registered_at.asc(), Attendance.id.asc()).all()


@admin_bp.route('/events/<int:event_id>/attendees')
@staff_required
def attendees(event_id):
    """Attendance records for an event, including cancelled history."""
    event = get_event_or_404(event_id)
    rows = _attendee_rows(event, request.args.get('status'))

    return jsonify({
        'success': True,
        'attendeeCount': event.attendee_count,
        'totalCount': len(rows),
        'attendees': [
            dict(a.to_dict(), user={
                'id': u.id,
                'name': u.full_name,
                'email': u.email,
                'graduationYear': u.graduation_year,
            })
            for a, u in rows
        ]
    })


@admin_bp.route('/events/<int:event_id>/attendees/export')
@staff_required
def export_attendees(event_id):
    """Export the attendee list as CSV."""
    event = get_event_or_404(event_id)
    rows = _attendee_rows(event, request.args.get('status'))

    output = io.StringIO()
    writer = csv.writer(output)

    # Header row
    writer.writerow([
        'name',
        'email',
        'phone',
        'graduation_year',
        'status',
        'payment_status',
        'registered_at',
        'cancelled_at',
    ])

    for a, u in rows:
        writer.writerow([
            u.full_name,
            u.email,
            u.phone or '',
            u.graduation_year or '',
            a.status,
            a.payment_status,
            a.registered_at.strftime('%Y-%m-%d %H:%M'),
            a.cancelled_at.strftime('%Y-%m-%d %H:%M') if a.cancelled_at else '',
        ])

    output.seek(0)
    return Response(
        output.getvalue(),
        mimetype='text/csv',
        headers={'Content-Disposition': f'attachment; filename=event_{event.id}_attendees.csv'}
    )


@admin_bp.route('/events/<int:event_id>/attendees/<int:user_id>/check-in', methods=['POST'])
@staff_required
def check_in(event_id, user_id):
    """Mark a registered attendee as attended."""
    attendance = registration_service.mark_attended(event_id, user_id)
    return jsonify({'success': True, 'attendance': attendance.to_dict()})


@admin_bp.route('/events/<int:event_id>/send-reminders', methods=['POST'])
@staff_required
def send_reminders(event_id):
    """Email a reminder to everyone registered."""
    event = get_event_or_404(event_id)
    data = request.get_json(silent=True) or {}

    message = (data.get('message') or '').strip()
    if not message:
        raise ValidationError({'message': 'Message is required'})

    if event.attendances.filter_by(status=STATUS_REGISTERED).count() == 0:
        raise ValidationError({'event': 'No registered attendees to notify'},
                              message='No registered attendees to notify')

    result = send_event_reminders(event, message, dry_run=parse_bool(data.get('dry_run')))
    return jsonify(result)


# ============== PAYMENTS ==============

@admin_bp.route('/payments')
@admin_required
def list_payments():
    """All payments, newest first. Filter by status or event_id."""
    page, limit = parse_pagination(request.args)
    query = Payment.query
    status = request.args.get('status')
    if status:
        query = query.filter(Payment.status == status)
    event_id = request.args.get('event_id', type=int)
    if event_id:
        query = query.filter(Payment.event_id == event_id)

    pagination = query.order_by(Payment.created_at.desc(), Payment.id.desc()).paginate(
        page=page, per_page=limit, error_out=False
    )

    return jsonify({
        'success': True,
        'payments': [
            dict(p.to_dict(), eventTitle=p.event.title,
                 user={'id': p.user.id, 'name': p.user.full_name, 'email': p.user.email})
            for p in pagination.items
        ],
        'pagination': {
            'page': page,
            'limit': limit,
            'total': pagination.total,
            'pages': pagination.pages,
        }
    })


@admin_bp.route('/payments/<int:payment_id>/refund', methods=['POST'])
@admin_required
def refund_payment(payment_id):
    payment = payment_service.refund_payment(payment_id)
    return jsonify({'success': True, 'payment': payment.to_dict()})


# ============== DASHBOARD ==============

@admin_bp.route('/statistics')
@staff_required
def statistics():
    """Dashboard totals."""
    return jsonify({'success': True, 'statistics': reporting_service.get_dashboard_stats()})


@admin_bp.route('/maintenance/reconcile-counts', methods=['POST'])
@admin_required
def reconcile_counts():
    """Recompute the registered_count cache from attendance records."""
    corrected = registration_service.reconcile_registered_counts()
    return jsonify({'success': True, 'corrected': corrected})
