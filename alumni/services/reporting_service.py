"""Read-only aggregation for the admin dashboard."""

from datetime import datetime
from sqlalchemy import func, case

from alumni import db
from alumni.models import Event, Attendance, Payment, User
from alumni.contract import STATUS_REGISTERED, STATUS_ATTENDED, STATUS_CANCELLED


def get_event_stats(limit: int = 10, now: datetime = None) -> list:
    """Per-event registration numbers for the next `limit` upcoming events."""
    now = now or datetime.utcnow()

    rows = db.session.query(
        Event,
        func.count(case((Attendance.status == STATUS_REGISTERED, 1))).label('registered'),
        func.count(case((Attendance.status == STATUS_ATTENDED, 1))).label('attended'),
        func.count(case((Attendance.status == STATUS_CANCELLED, 1))).label('cancelled'),
    ).outerjoin(Attendance, Attendance.event_id == Event.id).filter(
        Event.starts_at >= now,
        Event.status == 'published'
    ).group_by(Event.id).order_by(Event.starts_at.asc()).limit(limit).all()

    stats = []
    for event, registered, attended, cancelled in rows:
        fee = float(event.fee_amount or 0)
        stats.append({
            'id': event.id,
            'title': event.title,
            'startsAt': event.starts_at.isoformat() + 'Z',
            'capacity': event.capacity,
            'registered': registered,
            'attended': attended,
            'cancelled': cancelled,
            'fillRate': round(registered / event.capacity, 3) if event.capacity else None,
            # Expected revenue if every active registration pays
            'projectedRevenue': round(registered * fee, 2),
        })
    return stats


def get_dashboard_stats(now: datetime = None) -> dict:
    """Totals shown on the admin dashboard."""
    now = now or datetime.utcnow()

    events_by_status = dict(
        db.session.query(Event.status, func.count(Event.id)).group_by(Event.status).all()
    )
    attendance_by_status = dict(
        db.session.query(Attendance.status, func.count(Attendance.id)).group_by(Attendance.status).all()
    )
    revenue_rows = db.session.query(
        Payment.currency, func.coalesce(func.sum(Payment.amount), 0)
    ).filter(Payment.status == 'completed').group_by(Payment.currency).all()

    return {
        'users': {
            'total': User.query.count(),
            'active': User.query.filter_by(is_active=True).count(),
        },
        'events': {
            'total': sum(events_by_status.values()),
            'byStatus': events_by_status,
            'upcoming': Event.query.filter(
                Event.status == 'published',
                Event.starts_at >= now
            ).count(),
        },
        'registrations': {
            'active': attendance_by_status.get(STATUS_REGISTERED, 0),
            'attended': attendance_by_status.get(STATUS_ATTENDED, 0),
            'cancelled': attendance_by_status.get(STATUS_CANCELLED, 0),
        },
        'revenue': {currency: float(total) for currency, total in revenue_rows},
        'upcomingEvents': get_event_stats(now=now),
    }
