from datetime import datetime
from alumni import db
from alumni.contract import STATUS_REGISTERED, PAYMENT_PENDING
from alumni.models.event import isoformat


class Attendance(db.Model):
    """A user's registration for an event. Never deleted; cancellation sets status."""
    __tablename__ = 'attendances'

    id = db.Column(db.Integer, primary_key=True)
    event_id = db.Column(db.Integer, db.ForeignKey('events.id'), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    status = db.Column(db.String(20), default=STATUS_REGISTERED, nullable=False)  # registered, attended, cancelled
    payment_status = db.Column(db.String(20), default=PAYMENT_PENDING, nullable=False)  # pending, paid, refunded
    registered_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    cancelled_at = db.Column(db.DateTime, nullable=True)
    attended_at = db.Column(db.DateTime, nullable=True)

    # At most one active (registered) record per user per event
    __table_args__ = (
        db.Index(
            'uq_attendance_active',
            'event_id', 'user_id',
            unique=True,
            sqlite_where=db.text("status = 'registered'"),
            postgresql_where=db.text("status = 'registered'"),
        ),
    )

    def __repr__(self):
        return f'<Attendance event={self.event_id} user={self.user_id} status={self.status}>'

    @property
    def is_active(self):
        return self.status == STATUS_REGISTERED

    def to_dict(self):
        return {
            'id': self.id,
            'eventId': self.event_id,
            'userId': self.user_id,
            'status': self.status,
            'paymentStatus': self.payment_status,
            'registeredAt': isoformat(self.registered_at),
            'cancelledAt': isoformat(self.cancelled_at),
            'attendedAt': isoformat(self.attended_at),
        }
