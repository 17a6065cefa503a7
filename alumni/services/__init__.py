# Business logic services
from alumni.services.email_service import email_service
from alumni.services.payment_service import payment_service
from alumni.services.reminder_jobs import send_event_reminders, send_upcoming_reminders

__all__ = [
    'email_service',
    'payment_service',
    'send_event_reminders',
    'send_upcoming_reminders',
]
