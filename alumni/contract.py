"""
Data contract shared by the API and the client.

Status values and failure reasons travel over the wire as plain strings, so
both sides compare against the constants defined here.
"""

# Attendance record status
STATUS_REGISTERED = 'registered'
STATUS_ATTENDED = 'attended'
STATUS_CANCELLED = 'cancelled'
ATTENDANCE_STATUSES = (STATUS_REGISTERED, STATUS_ATTENDED, STATUS_CANCELLED)

# Attendance payment status
PAYMENT_PENDING = 'pending'
PAYMENT_PAID = 'paid'
PAYMENT_REFUNDED = 'refunded'
PAYMENT_STATUSES = (PAYMENT_PENDING, PAYMENT_PAID, PAYMENT_REFUNDED)

# Event lifecycle
EVENT_TYPES = ('reunion', 'webinar', 'fundraiser', 'networking', 'workshop', 'social', 'other')
EVENT_STATUSES = ('draft', 'published', 'cancelled', 'completed')
LOCATION_TYPES = ('physical', 'virtual', 'hybrid')

# Failure reasons reported by the registration endpoints
REASON_EVENT_NOT_FOUND = 'event-not-found'
REASON_REGISTRATION_NOT_REQUIRED = 'registration-not-required'
REASON_DEADLINE_PASSED = 'deadline-passed'
REASON_CAPACITY_EXCEEDED = 'capacity-exceeded'
REASON_ALREADY_REGISTERED = 'already-registered'
REASON_NOT_REGISTERED = 'not-registered'

# Other failure reasons
REASON_VALIDATION_FAILED = 'validation-failed'
REASON_UNAUTHORIZED = 'unauthorized'
REASON_FORBIDDEN = 'forbidden'
REASON_NOT_FOUND = 'not-found'
REASON_PAYMENT_FAILED = 'payment-failed'
REASON_SERVER_ERROR = 'server-error'

# Client-side only: the request never produced a server verdict
REASON_TRANSPORT_ERROR = 'transport-error'
REASON_TIMEOUT = 'timeout'

REGISTRATION_FAILURE_REASONS = (
    REASON_EVENT_NOT_FOUND,
    REASON_REGISTRATION_NOT_REQUIRED,
    REASON_DEADLINE_PASSED,
    REASON_CAPACITY_EXCEEDED,
    REASON_ALREADY_REGISTERED,
)

# User-facing wording for each reason, used when the server sends none
REASON_MESSAGES = {
    REASON_EVENT_NOT_FOUND: 'Event not found',
    REASON_REGISTRATION_NOT_REQUIRED: 'This event does not take registrations',
    REASON_DEADLINE_PASSED: 'Registration deadline has passed',
    REASON_CAPACITY_EXCEEDED: 'Event is full',
    REASON_ALREADY_REGISTERED: 'Already registered for this event',
    REASON_NOT_REGISTERED: 'Not registered for this event',
    REASON_VALIDATION_FAILED: 'Invalid request',
    REASON_UNAUTHORIZED: 'Please sign in again',
    REASON_FORBIDDEN: 'You do not have access to this resource',
    REASON_NOT_FOUND: 'Not found',
    REASON_PAYMENT_FAILED: 'Payment could not be processed',
    REASON_SERVER_ERROR: 'Something went wrong on our side',
    REASON_TRANSPORT_ERROR: 'Could not reach the server',
    REASON_TIMEOUT: 'The server took too long to respond',
}


def message_for(reason):
    return REASON_MESSAGES.get(reason, 'Something went wrong')
