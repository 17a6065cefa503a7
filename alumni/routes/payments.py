"""Payment lookups, receipts and gateway callbacks."""

from flask import Blueprint, request, jsonify

from alumni import db
from alumni.auth import token_required, get_current_user
from alumni.models import Payment
from alumni.errors import PaymentError, NotFound, PermissionDenied
from alumni.services.payment_service import payment_service

payments_bp = Blueprint('payments', __name__, url_prefix='/api/payments')


def get_visible_payment(payment_id):
    """A payment the current user owns, or any payment for an admin."""
    payment = db.session.get(Payment, payment_id)
    if not payment:
        raise NotFound('Payment not found')

    user = get_current_user()
    if payment.user_id != user.id and not user.is_admin:
        raise PermissionDenied('Access denied')
    return payment


@payments_bp.route('/<int:payment_id>')
@token_required
def get_payment(payment_id):
    payment = get_visible_payment(payment_id)
    return jsonify({
        'success': True,
        'payment': dict(payment.to_dict(), eventTitle=payment.event.title),
    })


@payments_bp.route('/<int:payment_id>/receipt')
@token_required
def receipt(payment_id):
    """Receipt for a completed payment."""
    payment = get_visible_payment(payment_id)
    if payment.status != 'completed':
        raise PaymentError('Receipt not available for incomplete payments')
    return jsonify({'success': True, 'receipt': payment.to_receipt()})


@payments_bp.route('/webhook', methods=['POST'])
def stripe_webhook():
    """
    Handle Stripe webhook events.

    Events handled:
    - payment_intent.succeeded: mark payment completed, registration paid
    - payment_intent.payment_failed: mark payment failed
    """
    signature = request.headers.get('Stripe-Signature')
    if not signature:
        raise PaymentError('Missing Stripe-Signature header')

    result = payment_service.handle_webhook(request.get_data(), signature)
    return jsonify({'success': True, **result})
