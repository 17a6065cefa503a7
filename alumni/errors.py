"""
Exception taxonomy for the API.

Three kinds of failure reach a client:
- validation failures (bad input shape)
- business-rule failures (deadline passed, event full, duplicate registration)
- unexpected server faults

Business-rule failures are expected and user-facing. They are logged at INFO
and always rendered as a structured ``{success, reason, error}`` body so the
client can show an accurate message.
"""

from flask import jsonify, current_app
from werkzeug.exceptions import HTTPException

from alumni import db
from alumni import contract


class ApiError(Exception):
    """Base class for failures rendered as a JSON error body."""
    status_code = 400
    reason = contract.REASON_SERVER_ERROR

    def __init__(self, message=None, **extra):
        self.message = message or contract.message_for(self.reason)
        self.extra = extra
        super().__init__(self.message)

    def to_dict(self):
        body = {
            'success': False,
            'reason': self.reason,
            'error': self.message,
        }
        body.update(self.extra)
        return body


class ValidationError(ApiError):
    status_code = 400
    reason = contract.REASON_VALIDATION_FAILED

    def __init__(self, errors, message=None):
        # errors: dict of field name -> message
        super().__init__(message or 'Invalid request', errors=errors)
        self.errors = errors


class AuthenticationError(ApiError):
    status_code = 401
    reason = contract.REASON_UNAUTHORIZED


class PermissionDenied(ApiError):
    status_code = 403
    reason = contract.REASON_FORBIDDEN


class NotFound(ApiError):
    status_code = 404
    reason = contract.REASON_NOT_FOUND


class PaymentError(ApiError):
    status_code = 400
    reason = contract.REASON_PAYMENT_FAILED


# ============== REGISTRATION RULES ==============

class RegistrationError(ApiError):
    """A registration or cancellation was refused by a business rule."""


class EventNotFound(RegistrationError):
    status_code = 404
    reason = contract.REASON_EVENT_NOT_FOUND


class RegistrationNotRequired(RegistrationError):
    status_code = 400
    reason = contract.REASON_REGISTRATION_NOT_REQUIRED


class DeadlinePassed(RegistrationError):
    status_code = 400
    reason = contract.REASON_DEADLINE_PASSED


class CapacityExceeded(RegistrationError):
    status_code = 409
    reason = contract.REASON_CAPACITY_EXCEEDED


class AlreadyRegistered(RegistrationError):
    status_code = 409
    reason = contract.REASON_ALREADY_REGISTERED


class NotRegistered(RegistrationError):
    status_code = 409
    reason = contract.REASON_NOT_REGISTERED


def register_error_handlers(app):
    """Render every failure as JSON."""

    @app.errorhandler(ApiError)
    def handle_api_error(error):
        db.session.rollback()
        if isinstance(error, (RegistrationError, ValidationError)):
            current_app.logger.info(f"Request refused ({error.reason}): {error.message}")
        else:
            current_app.logger.warning(f"API error ({error.reason}): {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        reason = contract.REASON_NOT_FOUND if error.code == 404 else contract.REASON_VALIDATION_FAILED
        if error.code == 405:
            reason = 'method-not-allowed'
        return jsonify({
            'success': False,
            'reason': reason,
            'error': error.description,
        }), error.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(error):
        db.session.rollback()
        current_app.logger.exception(f"Unhandled error: {error}")
        return jsonify({
            'success': False,
            'reason': contract.REASON_SERVER_ERROR,
            'error': contract.message_for(contract.REASON_SERVER_ERROR),
        }), 500
