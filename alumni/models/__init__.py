# Import all models here so they're registered with SQLAlchemy
from alumni.models.user import User
from alumni.models.event import Event
from alumni.models.attendance import Attendance
from alumni.models.payment import Payment
from alumni.models.email_log import EmailLog

__all__ = ['User', 'Event', 'Attendance', 'Payment', 'EmailLog']
