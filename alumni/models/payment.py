from datetime import datetime
from alumni import db
from alumni.models.event import isoformat


class Payment(db.Model):
    """Event ticket payment processed through the payment gateway."""
    __tablename__ = 'payments'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    event_id = db.Column(db.Integer, db.ForeignKey('events.id'), nullable=False)
    attendance_id = db.Column(db.Integer, db.ForeignKey('attendances.id'), nullable=False)
    amount = db.Column(db.Numeric(10, 2), nullable=False)
    currency = db.Column(db.String(3), default='USD', nullable=False)

    provider = db.Column(db.String(20), default='stripe')
    provider_reference = db.Column(db.String(100), nullable=True, unique=True)  # PaymentIntent id

    status = db.Column(db.String(20), default='pending')  # pending, completed, failed, refunded
    receipt_number = db.Column(db.String(30), unique=True, nullable=True)  # set once the row has an id
    failure_reason = db.Column(db.Text, nullable=True)
    refund_reference = db.Column(db.String(100), nullable=True)

    processed_at = db.Column(db.DateTime, nullable=True)
    refunded_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    user = db.relationship('User', backref=db.backref('payments', lazy='dynamic'))
    attendance = db.relationship('Attendance', backref=db.backref('payments', lazy='dynamic'))

    def __repr__(self):
        return f'<Payment {self.receipt_number} {self.status}>'

    def issue_receipt_number(self):
        """ALM-YYYYMMDD-NNNN, numbered by payment id so it can't collide. Needs a flushed row."""
        created = self.created_at or datetime.utcnow()
        self.receipt_number = f"ALM-{created.strftime('%Y%m%d')}-{self.id:04d}"
        return self.receipt_number

    def to_dict(self):
        return {
            'id': self.id,
            'eventId': self.event_id,
            'attendanceId': self.attendance_id,
            'amount': float(self.amount),
            'currency': self.currency,
            'status': self.status,
            'receiptNumber': self.receipt_number,
            'failureReason': self.failure_reason,
            'createdAt': isoformat(self.created_at),
            'processedAt': isoformat(self.processed_at),
            'refundedAt': isoformat(self.refunded_at),
        }

    def to_receipt(self):
        """Receipt for a completed payment."""
        return {
            'receiptNumber': self.receipt_number,
            'paidAt': isoformat(self.processed_at),
            'amount': float(self.amount),
            'currency': self.currency,
            'status': self.status,
            'payer': {
                'name': self.user.full_name,
                'email': self.user.email,
            },
            'event': {
                'id': self.event.id,
                'title': self.event.title,
                'start': isoformat(self.event.starts_at),
            },
        }
