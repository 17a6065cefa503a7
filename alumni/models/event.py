from datetime import datetime
from decimal import Decimal
from alumni import db
from alumni.contract import STATUS_REGISTERED


def isoformat(value):
    """Serialize a naive UTC datetime for the API."""
    return value.isoformat() + 'Z' if value else None


class Event(db.Model):
    """Alumni network event."""
    __tablename__ = 'events'

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=False)
    event_type = db.Column(db.String(20), nullable=False)  # reunion, webinar, fundraiser, networking, workshop, social, other
    starts_at = db.Column(db.DateTime, nullable=False, index=True)
    ends_at = db.Column(db.DateTime, nullable=False)

    # Location
    location_type = db.Column(db.String(20), default='physical')  # physical, virtual, hybrid
    venue = db.Column(db.String(200), nullable=True)
    address = db.Column(db.String(300), nullable=True)
    city = db.Column(db.String(100), nullable=True)
    country = db.Column(db.String(100), nullable=True)
    virtual_link = db.Column(db.String(500), nullable=True)

    organizer_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)

    # NULL means unlimited
    capacity = db.Column(db.Integer, nullable=True)

    # Registration policy
    registration_required = db.Column(db.Boolean, default=True)
    registration_deadline = db.Column(db.DateTime, nullable=True)
    fee_amount = db.Column(db.Numeric(10, 2), default=0)
    fee_currency = db.Column(db.String(3), default='USD')

    # Cache of active registrations; guards capacity, reconcilable from attendances
    registered_count = db.Column(db.Integer, default=0, nullable=False)

    status = db.Column(db.String(20), default='draft', index=True)  # draft, published, cancelled, completed
    is_public = db.Column(db.Boolean, default=True)
    tags = db.Column(db.String(500), nullable=True)  # comma separated
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    attendances = db.relationship('Attendance', backref='event', lazy='dynamic',
                                  order_by='Attendance.id')
    payments = db.relationship('Payment', backref='event', lazy='dynamic')

    def __repr__(self):
        return f'<Event {self.title}>'

    @property
    def attendee_count(self):
        """Active registrations, counted from the records themselves."""
        return self.attendances.filter_by(status=STATUS_REGISTERED).count()

    @property
    def is_free(self):
        return not self.fee_amount or Decimal(self.fee_amount) <= 0

    @property
    def is_published(self):
        return self.status == 'published'

    @property
    def tag_list(self):
        return [t.strip() for t in (self.tags or '').split(',') if t.strip()]

    def deadline_passed(self, now=None):
        now = now or datetime.utcnow()
        return bool(self.registration_deadline and now > self.registration_deadline)

    def to_summary(self, attendance=None, include_viewer=False, attendee_count=None):
        """
        Build the event summary payload consumed by the client.

        Args:
            attendance: The viewer's active Attendance record, if any
            include_viewer: Add the 'viewer' block (only when a viewer is known)
            attendee_count: Precomputed count, avoids a second query
        """
        if attendee_count is None:
            attendee_count = self.attendee_count

        fee = None
        if not self.is_free:
            fee = {
                'amount': float(self.fee_amount),
                'currency': self.fee_currency,
            }

        summary = {
            'id': self.id,
            'title': self.title,
            'description': self.description,
            'type': self.event_type,
            'status': self.status,
            'isPublic': self.is_public,
            'tags': self.tag_list,
            'date': {
                'start': isoformat(self.starts_at),
                'end': isoformat(self.ends_at),
            },
            'location': {
                'type': self.location_type,
                'venue': self.venue,
                'address': self.address,
                'city': self.city,
                'country': self.country,
                'virtualLink': self.virtual_link,
            },
            'organizer': self.organizer.full_name if self.organizer else None,
            'capacity': self.capacity,
            'attendeeCount': attendee_count,
            'spotsRemaining': max(self.capacity - attendee_count, 0) if self.capacity is not None else None,
            'registration': {
                'isRequired': bool(self.registration_required),
                'deadline': isoformat(self.registration_deadline),
                'fee': fee,
                'isOpen': bool(self.registration_required) and self.is_published
                          and not self.deadline_passed()
                          and (self.capacity is None or attendee_count < self.capacity),
            },
        }

        if include_viewer:
            summary['viewer'] = {
                'isRegistered': attendance is not None,
                'attendanceId': attendance.id if attendance else None,
                'paymentStatus': attendance.payment_status if attendance else None,
            }

        return summary
