"""Current member's profile, registrations and payments."""

from flask import Blueprint, jsonify, request

from alumni import db
from alumni.auth import token_required, get_current_user
from alumni.models import Attendance, Event, Payment
from alumni.contract import ATTENDANCE_STATUSES
from alumni.errors import ValidationError
from alumni.validation import parse_bool, parse_pagination

me_bp = Blueprint('me', __name__, url_prefix='/api/me')


@me_bp.route('')
@token_required
def profile():
    return jsonify({'success': True, 'user': get_current_user().to_dict()})


@me_bp.route('/preferences', methods=['PATCH'])
@token_required
def update_preferences():
    """Toggle email notifications."""
    data = request.get_json(silent=True) or {}
    if 'emailNotifications' not in data:
        raise ValidationError({'emailNotifications': 'This field is required'})

    user = get_current_user()
    user.email_notifications = parse_bool(data['emailNotifications'], default=True)
    db.session.commit()
    return jsonify({'success': True, 'user': user.to_dict()})


@me_bp.route('/registrations')
@token_required
def registrations():
    """
    The member's attendance history, newest first.

    Query params:
        status: Only records with this status (registered, attended, cancelled)
    """
    user = get_current_user()
    status = request.args.get('status')
    if status and status not in ATTENDANCE_STATUSES:
        raise ValidationError({'status': 'Invalid status'})

    query = db.session.query(Attendance, Event).join(Event, Attendance.event_id == Event.id).filter(
        Attendance.user_id == user.id
    )
    if status:
        query = query.filter(Attendance.status == status)

    rows = query.order_by(Attendance.registered_at.desc(), Attendance.id.desc()).all()

    return jsonify({
        'success': True,
        'registrations': [
            dict(attendance.to_dict(), eventTitle=event.title, eventStart=event.starts_at.isoformat() + 'Z')
            for attendance, event in rows
        ]
    })


@me_bp.route('/payments')
@token_required
def payments():
    """The member's payments, newest first."""
    page, limit = parse_pagination(request.args)
    pagination = Payment.query.filter_by(user_id=get_current_user().id).order_by(
        Payment.created_at.desc(), Payment.id.desc()
    ).paginate(page=page, per_page=limit, error_out=False)

    return jsonify({
        'success': True,
        'payments': [
            dict(p.to_dict(), eventTitle=p.event.title)
            for p in pagination.items
        ],
        'pagination': {
            'page': page,
            'limit': limit,
            'total': pagination.total,
            'pages': pagination.pages,
        }
    })
