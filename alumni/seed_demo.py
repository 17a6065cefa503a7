"""Seed script for a development database."""
from datetime import datetime, timedelta
from alumni import db
from alumni.models import User, Event


DEMO_USERS = [
    ('Amina', 'Hassan', 'admin@alumninetwork.org', 'admin', 2012),
    ('Omar', 'Farah', 'moderator@alumninetwork.org', 'moderator', 2015),
    ('Layla', 'Ahmed', 'layla.ahmed@example.com', 'alumni', 2018),
    ('Yusuf', 'Ali', 'yusuf.ali@example.com', 'alumni', 2019),
    ('Hodan', 'Warsame', 'hodan.warsame@example.com', 'alumni', 2020),
]


def seed_demo():
    """Add demo users and events if they don't exist. Returns summary."""
    added_users = 0
    for first_name, last_name, email, role, year in DEMO_USERS:
        if not User.query.filter_by(email=email).first():
            db.session.add(User(
                first_name=first_name,
                last_name=last_name,
                email=email,
                role=role,
                graduation_year=year
            ))
            added_users += 1
    db.session.flush()

    admin = User.query.filter_by(role='admin').first()
    now = datetime.utcnow().replace(minute=0, second=0, microsecond=0)

    demo_events = [
        dict(title='Class of 2015 Reunion', event_type='reunion',
             description='Ten years on. Dinner, music and old friends.',
             starts_at=now + timedelta(days=30), ends_at=now + timedelta(days=30, hours=5),
             venue='Main Campus Hall', capacity=120,
             registration_deadline=now + timedelta(days=25),
             fee_amount=25, fee_currency='USD'),
        dict(title='Career Networking Night', event_type='networking',
             description='Meet alumni working across tech, finance and healthcare.',
             starts_at=now + timedelta(days=10), ends_at=now + timedelta(days=10, hours=3),
             venue='Innovation Hub', capacity=1),
        dict(title='Resume Workshop (Online)', event_type='webinar',
             description='A hands-on session on writing a strong resume.',
             starts_at=now + timedelta(days=5), ends_at=now + timedelta(days=5, hours=1),
             location_type='virtual', virtual_link='https://meet.example.com/resume-workshop'),
    ]

    added_events = 0
    for values in demo_events:
        if not Event.query.filter_by(title=values['title']).first():
            db.session.add(Event(
                organizer_id=admin.id if admin else None,
                status='published',
                registered_count=0,
                **values
            ))
            added_events += 1

    db.session.commit()

    return {
        'users_added': added_users,
        'events_added': added_events,
        'total_users': User.query.count(),
        'total_events': Event.query.count(),
    }
