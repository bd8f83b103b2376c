from datetime import datetime

import pytest

from app import create_app
from models import db, CalendarEvent, Task, User

# Wednesday
FIXED_NOW = datetime(2024, 1, 10, 8, 0)
TEST_API_KEY = 'test-shared-key'


@pytest.fixture
def app():
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite://',
        'ENABLE_RECURRENCE_JOBS': False,
        'API_SHARED_KEY': TEST_API_KEY,
    })
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def user(app):
    u = User(username='alice')
    db.session.add(u)
    db.session.commit()
    return u


@pytest.fixture
def other_user(app):
    u = User(username='bob')
    db.session.add(u)
    db.session.commit()
    return u


@pytest.fixture
def make_task(user):
    def _make(**overrides):
        fields = {
            'user_id': user.id,
            'title': 'Water plants',
            'status': 'not_started',
            'priority': 'medium',
            'due_date': datetime(2024, 1, 10, 9, 0),
            'is_recurring': True,
            'recurrence_pattern': 'daily',
            'recurrence_mode': 'clone',
        }
        fields.update(overrides)
        task = Task(**fields)
        db.session.add(task)
        db.session.commit()
        return task

    return _make


@pytest.fixture
def make_event(user):
    def _make(**overrides):
        fields = {
            'user_id': user.id,
            'title': 'Standup',
            'start_time': datetime(2024, 1, 10, 14, 0),
            'end_time': datetime(2024, 1, 10, 15, 30),
            'is_recurring': True,
            'recurrence_pattern': 'weekly',
            'recurrence_mode': 'clone',
        }
        fields.update(overrides)
        event = CalendarEvent(**fields)
        db.session.add(event)
        db.session.commit()
        return event

    return _make


@pytest.fixture
def api_headers():
    def _headers(u):
        return {'X-User-Id': str(u.id), 'X-API-Key': TEST_API_KEY}

    return _headers
