from datetime import datetime, timedelta

import pytest

from alumni import create_app, db
from alumni.auth import issue_token
from alumni.models import User, Event


@pytest.fixture()
def app():
    """A fresh app and schema for every test."""
    app = create_app('testing', {
        'APP_URL': 'http://alumni.test',
        'STRIPE_SECRET_KEY': None,
        'STRIPE_WEBHOOK_SECRET': 'whsec_test',
        'BREVO_API_KEY': None,
    })
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def make_user(app):
    counter = {'n': 0}

    def _make_user(role='alumni', **overrides):
        counter['n'] += 1
        values = {
            'email': f'user{counter["n"]}@example.com',
            'first_name': 'Test',
            'last_name': f'User{counter["n"]}',
            'role': role,
            'graduation_year': 2015,
        }
        values.update(overrides)
        user = User(**values)
        db.session.add(user)
        db.session.commit()
        return user

    return _make_user


@pytest.fixture()
def make_event(app):
    def _make_event(**overrides):
        starts_at = datetime.utcnow() + timedelta(days=14)
        values = {
            'title': 'Spring Reunion',
            'description': 'Catch up with your classmates.',
            'event_type': 'reunion',
            'starts_at': starts_at,
            'ends_at': starts_at + timedelta(hours=4),
            'location_type': 'physical',
            'venue': 'Main Hall',
            'status': 'published',
            'is_public': True,
            'registration_required': True,
            'capacity': None,
            'registered_count': 0,
        }
        values.update(overrides)
        event = Event(**values)
        db.session.add(event)
        db.session.commit()
        return event

    return _make_event


@pytest.fixture()
def auth_headers(app):
    def _auth_headers(user):
        return {'Authorization': f'Bearer {issue_token(user)}'}

    return _auth_headers


@pytest.fixture()
def member(make_user):
    return make_user()


@pytest.fixture()
def admin(make_user):
    return make_user(role='admin', email='admin@example.com')
