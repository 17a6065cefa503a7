from datetime import datetime
from alumni import db


class EmailLog(db.Model):
    """Track all sent emails."""
    __tablename__ = 'email_logs'

    id = db.Column(db.Integer, primary_key=True)
    email_type = db.Column(db.String(50), nullable=False)  # event_reminder, registration_confirmation
    recipient_email = db.Column(db.String(120), nullable=False)
    recipient_name = db.Column(db.String(200), nullable=True)
    subject = db.Column(db.String(255), nullable=False)

    # Link to event if applicable
    event_id = db.Column(db.Integer, db.ForeignKey('events.id'), nullable=True)

    # Brevo tracking
    brevo_message_id = db.Column(db.String(100), nullable=True)

    # Status tracking
    status = db.Column(db.String(20), default='sent')  # pending, sent, failed, dry_run
    error_message = db.Column(db.Text, nullable=True)

    # Timestamps
    sent_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationship
    event = db.relationship('Event', backref=db.backref('email_logs', lazy='dynamic'))

    def __repr__(self):
        return f'<EmailLog {self.email_type} to {self.recipient_email}>'
