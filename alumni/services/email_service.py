"""
Attendee email through Brevo.

Every message is rendered from a Jinja template under templates/emails/,
personalised per recipient, and recorded in EmailLog whether it was sent,
failed or only simulated (dry run). A failure for one attendee never stops
the rest of the batch.
"""

from flask import current_app, render_template
import sib_api_v3_sdk
from sib_api_v3_sdk.rest import ApiException

from alumni import db
from alumni.models import Event, EmailLog

EVENT_MESSAGE_TEMPLATE = 'emails/event_reminder.html'


def event_context(event: Event) -> dict:
    """Template variables describing an event."""
    app_url = current_app.config.get('APP_URL', '')
    return {
        'event_title': event.title,
        'event_date': event.starts_at.strftime('%A, %B %d, %Y'),
        'event_time': event.starts_at.strftime('%H:%M UTC'),
        'event_location': event.venue or event.virtual_link or 'See event page for details',
        'event_url': f'{app_url}/events/{event.id}',
        'app_url': app_url,
    }


class EmailService:
    """Sends event mail to attendees and keeps the EmailLog."""

    def __init__(self):
        self._client = None

    @property
    def client(self):
        """Brevo transactional API, created on first use from BREVO_API_KEY."""
        if self._client is None:
            api_key = current_app.config.get('BREVO_API_KEY')
            if not api_key:
                raise ValueError('BREVO_API_KEY is not configured')

            configuration = sib_api_v3_sdk.Configuration()
            configuration.api_key['api-key'] = api_key
            self._client = sib_api_v3_sdk.TransactionalEmailsApi(
                sib_api_v3_sdk.ApiClient(configuration)
            )
        return self._client

    def _sender(self) -> dict:
        return {
            'name': current_app.config.get('EMAIL_SENDER_NAME'),
            'email': current_app.config.get('EMAIL_SENDER_ADDRESS'),
        }

    def deliver(self, recipient: dict, subject: str, html: str, email_type: str,
                event_id: int = None, dry_run: bool = False) -> EmailLog:
        """
        Send one rendered message and record the attempt.

        Args:
            recipient: dict with 'email' and 'name'
            dry_run: Log the message without calling Brevo

        Returns:
            The EmailLog row; its status is sent, failed or dry_run
        """
        log = EmailLog(
            email_type=email_type,
            recipient_email=recipient['email'],
            recipient_name=recipient['name'],
            subject=subject,
            event_id=event_id,
            status='pending'
        )
        db.session.add(log)

        if dry_run:
            log.status = 'dry_run'
            db.session.commit()
            return log

        try:
            response = self.client.send_transac_email(sib_api_v3_sdk.SendSmtpEmail(
                sender=self._sender(),
                to=[{'email': recipient['email'], 'name': recipient['name']}],
                subject=subject,
                html_content=html
            ))
            log.brevo_message_id = response.message_id
            log.status = 'sent'
        except ApiException as e:
            log.status = 'failed'
            log.error_message = f'Brevo rejected the message ({e.status}): {e.reason}'
            current_app.logger.error(f"Brevo API error for {recipient['email']}: {e}")
        except Exception as e:
            log.status = 'failed'
            log.error_message = str(e)
            current_app.logger.error(f"Email to {recipient['email']} failed: {e}")

        db.session.commit()
        return log

    def send_to_attendees(self, event: Event, recipients: list, subject: str, message: str,
                          email_type: str, dry_run: bool = False) -> dict:
        """
        Email the same message about an event to each recipient, addressed by name.

        Returns:
            dict with 'sent', 'failed' and 'errors' (one entry per failed recipient)
        """
        context = event_context(event)
        results = {'sent': 0, 'failed': 0, 'errors': []}

        for recipient in recipients:
            html = render_template(
                EVENT_MESSAGE_TEMPLATE,
                recipient_name=recipient['name'],
                message=message,
                **context
            )
            log = self.deliver(recipient, subject, html, email_type, event_id=event.id, dry_run=dry_run)

            if log.status == 'failed':
                results['failed'] += 1
                results['errors'].append({'email': recipient['email'], 'error': log.error_message})
            else:
                results['sent'] += 1

        return results


# Global instance
email_service = EmailService()
