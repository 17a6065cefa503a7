"""
Event ticket payments through Stripe.

Flow:
1. A member registers for a paid event; their attendance record starts with
   payment_status 'pending'.
2. The client asks for a PaymentIntent (create_event_payment) and confirms
   the card payment with Stripe directly using the returned client secret.
3. Stripe calls our webhook. payment_intent.succeeded marks the payment
   completed and the attendance 'paid'; payment_intent.payment_failed marks
   the payment failed.

All gateway calls go through StripeGateway so tests can swap in a fake.
"""

from datetime import datetime
from decimal import Decimal
from flask import current_app
import stripe

from alumni import db
from alumni.models import Event, Payment
from alumni.contract import PAYMENT_PENDING, PAYMENT_PAID, PAYMENT_REFUNDED
from alumni.errors import PaymentError, NotFound, EventNotFound, NotRegistered
from alumni.services.registration_service import get_active_record


def to_minor_units(amount) -> int:
    """Stripe amounts are integers in the currency's smallest unit."""
    return int((Decimal(amount) * 100).quantize(Decimal('1')))


class StripeGateway:
    """Thin wrapper over the Stripe API."""

    def __init__(self, secret_key: str, webhook_secret: str = None):
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret

    def create_intent(self, amount: int, currency: str, description: str,
                      receipt_email: str, metadata: dict, idempotency_key: str) -> dict:
        intent = stripe.PaymentIntent.create(
            api_key=self.secret_key,
            amount=amount,
            currency=currency.lower(),
            description=description,
            receipt_email=receipt_email,
            metadata=metadata,
            automatic_payment_methods={'enabled': True},
            idempotency_key=idempotency_key,
        )
        return {'id': intent['id'], 'client_secret': intent['client_secret']}

    def retrieve_intent(self, intent_id: str) -> dict:
        intent = stripe.PaymentIntent.retrieve(intent_id, api_key=self.secret_key)
        return {'id': intent['id'], 'client_secret': intent['client_secret']}

    def refund(self, intent_id: str) -> str:
        refund = stripe.Refund.create(
            api_key=self.secret_key,
            payment_intent=intent_id,
            idempotency_key=f'refund-{intent_id}',
        )
        return refund['id']

    def parse_webhook(self, payload: bytes, signature: str) -> dict:
        """Verify the signature and return the event as {'type', 'object'}."""
        if not self.webhook_secret:
            raise PaymentError('Webhook secret not configured')
        try:
            event = stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except ValueError:
            raise PaymentError('Invalid payload')
        except stripe.SignatureVerificationError:
            raise PaymentError('Invalid signature')
        return {'type': event['type'], 'object': event['data']['object']}


class PaymentService:
    """Creates, confirms and refunds event payments."""

    def __init__(self, gateway=None):
        self._gateway = gateway

    @property
    def gateway(self):
        if self._gateway is None:
            secret_key = current_app.config.get('STRIPE_SECRET_KEY')
            if not secret_key:
                raise PaymentError('Payments are not configured')
            self._gateway = StripeGateway(
                secret_key,
                current_app.config.get('STRIPE_WEBHOOK_SECRET')
            )
        return self._gateway

    @gateway.setter
    def gateway(self, gateway):
        self._gateway = gateway

    def create_event_payment(self, event_id: int, user) -> dict:
        """
        Start (or resume) payment for the user's registration.

        Returns:
            dict with 'payment' (Payment) and 'client_secret'
        """
        event = db.session.get(Event, event_id)
        if not event:
            raise EventNotFound()

        attendance = get_active_record(event_id, user.id)
        if not attendance:
            raise NotRegistered()

        if event.is_free:
            raise PaymentError('This event is free')
        if attendance.payment_status != PAYMENT_PENDING:
            raise PaymentError(f'Registration is already {attendance.payment_status}')

        # A failed intent returns to requires_payment_method and can be confirmed again
        existing = Payment.query.filter(
            Payment.attendance_id == attendance.id,
            Payment.status.in_(('pending', 'failed'))
        ).order_by(Payment.id.desc()).first()

        try:
            if existing and existing.provider_reference:
                intent = self.gateway.retrieve_intent(existing.provider_reference)
                if existing.status == 'failed':
                    existing.status = 'pending'
                    existing.failure_reason = None
                    db.session.commit()
                    current_app.logger.info(f"Retrying payment {existing.id} for attendance {attendance.id}")
                return {'payment': existing, 'client_secret': intent['client_secret']}

            intent = self.gateway.create_intent(
                amount=to_minor_units(event.fee_amount),
                currency=event.fee_currency,
                description=f'Ticket: {event.title}',
                receipt_email=user.email,
                metadata={
                    'event_id': str(event.id),
                    'user_id': str(user.id),
                    'attendance_id': str(attendance.id),
                },
                idempotency_key=f'attendance-{attendance.id}',
            )
        except stripe.StripeError as e:
            current_app.logger.error(f"Stripe error creating payment for attendance {attendance.id}: {e}")
            raise PaymentError('Payment provider is unavailable, please try again')

        payment = Payment(
            user_id=user.id,
            event_id=event.id,
            attendance_id=attendance.id,
            amount=event.fee_amount,
            currency=event.fee_currency,
            provider='stripe',
            provider_reference=intent['id'],
            status='pending'
        )
        db.session.add(payment)
        db.session.flush()
        payment.issue_receipt_number()
        db.session.commit()

        current_app.logger.info(f"Created payment {payment.id} ({intent['id']}) for attendance {attendance.id}")
        return {'payment': payment, 'client_secret': intent['client_secret']}

    def handle_webhook(self, payload: bytes, signature: str) -> dict:
        """Apply a verified Stripe webhook. Unknown event types are acknowledged and ignored."""
        event = self.gateway.parse_webhook(payload, signature)
        event_type = event['type']
        data = event['object']

        current_app.logger.info(f"Received Stripe webhook: {event_type}")

        if event_type == 'payment_intent.succeeded':
            return self._mark_completed(data['id'])
        if event_type == 'payment_intent.payment_failed':
            error = data.get('last_payment_error') or {}
            return self._mark_failed(data['id'], error.get('message'))

        return {'handled': False, 'type': event_type}

    def _find_payment(self, intent_id: str) -> Payment:
        payment = Payment.query.filter_by(provider_reference=intent_id).first()
        if not payment:
            current_app.logger.warning(f"Webhook for unknown PaymentIntent {intent_id}")
        return payment

    def _mark_completed(self, intent_id: str) -> dict:
        payment = self._find_payment(intent_id)
        if not payment:
            return {'handled': False, 'type': 'payment_intent.succeeded'}

        if payment.status != 'completed':
            payment.status = 'completed'
            payment.processed_at = datetime.utcnow()
            payment.failure_reason = None
            payment.attendance.payment_status = PAYMENT_PAID
            db.session.commit()
            current_app.logger.info(f"Payment {payment.id} completed")

        return {'handled': True, 'type': 'payment_intent.succeeded', 'payment_id': payment.id}

    def _mark_failed(self, intent_id: str, reason: str = None) -> dict:
        payment = self._find_payment(intent_id)
        if not payment:
            return {'handled': False, 'type': 'payment_intent.payment_failed'}

        payment.status = 'failed'
        payment.failure_reason = reason or 'Payment failed'
        db.session.commit()
        current_app.logger.info(f"Payment {payment.id} failed: {payment.failure_reason}")

        return {'handled': True, 'type': 'payment_intent.payment_failed', 'payment_id': payment.id}

    def refund_payment(self, payment_id: int) -> Payment:
        """Refund a completed payment and flag the registration as refunded."""
        payment = db.session.get(Payment, payment_id)
        if not payment:
            raise NotFound('Payment not found')
        if payment.status != 'completed':
            raise PaymentError(f'Only completed payments can be refunded (status: {payment.status})')

        try:
            refund_id = self.gateway.refund(payment.provider_reference)
        except stripe.StripeError as e:
            current_app.logger.error(f"Stripe refund error for payment {payment.id}: {e}")
            raise PaymentError('Refund failed, please try again')

        payment.status = 'refunded'
        payment.refund_reference = refund_id
        payment.refunded_at = datetime.utcnow()
        payment.attendance.payment_status = PAYMENT_REFUNDED
        db.session.commit()

        current_app.logger.info(f"Payment {payment.id} refunded ({refund_id})")
        return payment


# Global instance
payment_service = PaymentService()
