"""
Attendee reminder emails.

Jobs:
1. Manual reminder - an admin sends a custom message to everyone registered
   for one event.
2. Upcoming reminder - run from cron (``flask send-reminders``) to remind
   attendees of published events starting within the next N hours.

Only attendees with status 'registered' whose email_notifications preference
is on are emailed. Automatic reminders are logged under their own email type
so a manual message never suppresses them.
"""

from datetime import datetime, timedelta
from flask import current_app

from alumni.models import Event, Attendance, User, EmailLog
from alumni.contract import STATUS_REGISTERED
from alumni.services.email_service import email_service

MANUAL_REMINDER = 'event_reminder'
AUTOMATIC_REMINDER = 'event_reminder_auto'


def get_reminder_recipients(event: Event) -> list:
    """Registered attendees who accept email."""
    users = User.query.join(Attendance).filter(
        Attendance.event_id == event.id,
        Attendance.status == STATUS_REGISTERED,
        User.email_notifications.is_(True),
        User.is_active.is_(True)
    ).order_by(User.last_name, User.first_name).all()

    return [{'email': u.email, 'name': u.full_name} for u in users]


def send_event_reminders(event: Event, message: str, dry_run: bool = False,
                         email_type: str = MANUAL_REMINDER) -> dict:
    """
    Email a reminder to every registered attendee of an event.

    Returns:
        dict with 'success', 'message', 'sent', 'failed', 'errors'
    """
    recipients = get_reminder_recipients(event)
    if not recipients:
        return {
            'success': False,
            'message': 'No registered attendees to notify',
            'sent': 0,
            'failed': 0,
            'errors': []
        }

    results = email_service.send_to_attendees(
        event,
        recipients,
        subject=f"Reminder: {event.title}",
        message=message,
        email_type=email_type,
        dry_run=dry_run
    )

    current_app.logger.info(
        f"Reminders for event {event.id}: {results['sent']} sent, {results['failed']} failed"
    )

    return {
        'success': results['failed'] == 0,
        'message': f"Sent {results['sent']} reminder(s)" + (' (dry run)' if dry_run else ''),
        **results
    }


def already_reminded(event: Event) -> bool:
    """Whether an automatic reminder already went out for this event."""
    return EmailLog.query.filter(
        EmailLog.event_id == event.id,
        EmailLog.email_type == AUTOMATIC_REMINDER,
        EmailLog.status == 'sent'
    ).first() is not None


def send_upcoming_reminders(hours: int = 24, now: datetime = None, dry_run: bool = False) -> dict:
    """
    Remind attendees of published events starting within the next `hours` hours.

    Events that already had an automatic reminder sent are skipped.
    """
    now = now or datetime.utcnow()
    window_end = now + timedelta(hours=hours)

    events = Event.query.filter(
        Event.status == 'published',
        Event.starts_at > now,
        Event.starts_at <= window_end
    ).order_by(Event.starts_at).all()

    summary = {'success': True, 'events': 0, 'sent': 0, 'failed': 0, 'skipped': 0}
    for event in events:
        if already_reminded(event):
            summary['skipped'] += 1
            continue

        result = send_event_reminders(
            event,
            message=f"{event.title} starts soon. We look forward to seeing you!",
            dry_run=dry_run,
            email_type=AUTOMATIC_REMINDER
        )
        summary['events'] += 1
        summary['sent'] += result['sent']
        summary['failed'] += result['failed']
        if result['failed']:
            summary['success'] = False

    summary['message'] = f"Processed {summary['events']} event(s), sent {summary['sent']} reminder(s)"
    return summary
