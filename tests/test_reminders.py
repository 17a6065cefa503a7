"""Tests for reminder emails. Brevo is replaced by a MagicMock API instance."""

from datetime import datetime, timedelta
from unittest.mock import MagicMock, patch

import pytest
from sib_api_v3_sdk.rest import ApiException

from alumni.models import EmailLog
from alumni.services import registration_service
from alumni.services.email_service import email_service
from alumni.services.reminder_jobs import (
    get_reminder_recipients, send_event_reminders, send_upcoming_reminders,
)


@pytest.fixture()
def brevo():
    api = MagicMock()
    api.send_transac_email.return_value = MagicMock(message_id='<msg-1@brevo>')
    with patch.object(email_service, '_client', api):
        yield api


def test_recipients_exclude_cancelled_and_opted_out(make_event, make_user):
    event = make_event()
    going = make_user(first_name='Going')
    quiet = make_user(first_name='Quiet', email_notifications=False)
    gone = make_user(first_name='Gone')
    for user in (going, quiet, gone):
        registration_service.register(event.id, user.id)
    registration_service.cancel(event.id, gone.id)

    assert get_reminder_recipients(event) == [{'email': going.email, 'name': going.full_name}]


def test_send_event_reminders(make_event, member, brevo):
    event = make_event(title='Gala Night')
    registration_service.register(event.id, member.id)

    result = send_event_reminders(event, 'Doors open at 7pm')

    assert result['success'] is True
    assert result['sent'] == 1
    email = brevo.send_transac_email.call_args[0][0]
    assert email.subject == 'Reminder: Gala Night'
    assert 'Doors open at 7pm' in email.html_content
    assert member.full_name in email.html_content
    assert f'http://alumni.test/events/{event.id}' in email.html_content

    log = EmailLog.query.one()
    assert (log.status, log.event_id, log.brevo_message_id) == ('sent', event.id, '<msg-1@brevo>')


def test_brevo_failure_is_logged(make_event, member, brevo):
    event = make_event()
    registration_service.register(event.id, member.id)
    brevo.send_transac_email.side_effect = ApiException(status=401, reason='Unauthorized')

    result = send_event_reminders(event, 'See you there')

    assert result['success'] is False
    assert result['failed'] == 1
    assert EmailLog.query.one().status == 'failed'


def test_dry_run_sends_nothing(make_event, member, brevo):
    event = make_event()
    registration_service.register(event.id, member.id)

    result = send_event_reminders(event, 'See you there', dry_run=True)

    assert result['sent'] == 1
    assert '(dry run)' in result['message']
    brevo.send_transac_email.assert_not_called()
    assert EmailLog.query.one().status == 'dry_run'


def test_no_recipients(make_event):
    result = send_event_reminders(make_event(), 'Hello')
    assert result['success'] is False
    assert result['sent'] == 0


def test_upcoming_reminders_window_and_dedup(make_event, member, brevo):
    now = datetime(2030, 3, 1, 9, 0)
    soon = make_event(title='Soon', starts_at=now + timedelta(hours=5), ends_at=now + timedelta(hours=8))
    later = make_event(title='Later', starts_at=now + timedelta(days=3), ends_at=now + timedelta(days=3, hours=2))
    for event in (soon, later):
        registration_service.register(event.id, member.id, now=now)

    first = send_upcoming_reminders(hours=24, now=now)
    second = send_upcoming_reminders(hours=24, now=now)

    assert (first['events'], first['sent'], first['skipped']) == (1, 1, 0)
    assert (second['events'], second['sent'], second['skipped']) == (0, 0, 1)
    assert brevo.send_transac_email.call_count == 1


def test_send_reminders_endpoint(client, make_event, member, admin, auth_headers, brevo):
    event = make_event()
    registration_service.register(event.id, member.id)

    response = client.post(
        f'/api/admin/events/{event.id}/send-reminders',
        json={'message': 'Bring your badge', 'dry_run': True},
        headers=auth_headers(admin)
    )

    assert response.status_code == 200
    assert response.get_json()['sent'] == 1


def test_send_reminders_endpoint_validation(client, make_event, admin, auth_headers):
    event = make_event()
    headers = auth_headers(admin)

    response = client.post(f'/api/admin/events/{event.id}/send-reminders', json={}, headers=headers)
    assert response.status_code == 400
    assert 'message' in response.get_json()['errors']

    response = client.post(f'/api/admin/events/{event.id}/send-reminders',
                           json={'message': 'Hi'}, headers=headers)
    assert response.status_code == 400
    assert 'event' in response.get_json()['errors']


def test_connection_failure_does_not_stop_the_batch(make_event, make_user, brevo):
    event = make_event()
    for _ in range(2):
        registration_service.register(event.id, make_user().id)
    brevo.send_transac_email.side_effect = ConnectionError('brevo unreachable')

    result = send_event_reminders(event, 'See you there')

    assert (result['sent'], result['failed']) == (0, 2)
    assert [e['error'] for e in result['errors']] == ['brevo unreachable'] * 2
    assert [log.status for log in EmailLog.query.all()] == ['failed', 'failed']


def test_missing_api_key_counts_as_failure(make_event, member):
    event = make_event()
    registration_service.register(event.id, member.id)

    with patch.object(email_service, '_client', None):
        result = send_event_reminders(event, 'See you there')

    assert result['failed'] == 1
    assert 'BREVO_API_KEY' in result['errors'][0]['error']


def test_manual_reminder_does_not_suppress_automatic_one(make_event, member, brevo):
    now = datetime(2030, 3, 1, 9, 0)
    event = make_event(starts_at=now + timedelta(hours=6), ends_at=now + timedelta(hours=9))
    registration_service.register(event.id, member.id, now=now)

    send_event_reminders(event, 'Parking is on level 2')
    result = send_upcoming_reminders(hours=24, now=now)

    assert (result['events'], result['sent'], result['skipped']) == (1, 1, 0)
    assert brevo.send_transac_email.call_count == 2
    assert sorted(log.email_type for log in EmailLog.query.all()) == ['event_reminder', 'event_reminder_auto']
