# tests/conftest.py

from contextlib import contextmanager

import pytest

from fieldkpi.engine.definitions import EngineConfig
from fieldkpi.seed import (DEFAULT_ACTION_TYPES, DEFAULT_METRICS, DEFAULT_RATING_SCALE,
                           DEFAULT_TRIGGERS)


@pytest.fixture(scope="module")
def app_with_db():
    """
    Creates a new app instance for a test module, sets up an in-memory database,
    and yields the app within an application context.
    """
    from config import TestConfig
    from fieldkpi import create_app, db

    app = create_app(TestConfig)

    with app.app_context():
        db.create_all()
        yield app  # The tests will run here
        db.drop_all()


@pytest.fixture
def seeded_app():
    """A fresh app per test with default configuration and two known employees."""
    from config import TestConfig
    from fieldkpi import create_app, db
    from fieldkpi.models import Employee
    from fieldkpi.seed import seed_data

    app = create_app(TestConfig)
    with app.app_context():
        db.create_all()
        seed_data()
        db.session.add(Employee(employee_id='E1', name='Asha Rao', email='asha.rao@example.com'))
        db.session.add(Employee(employee_id='E2', name='Vikram Singh', email='vikram.singh@example.com'))
        db.session.commit()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(seeded_app):
    return seeded_app.test_client()


@pytest.fixture
def default_config():
    """The seeded default configuration as an EngineConfig snapshot."""
    return EngineConfig.from_dicts(
        DEFAULT_METRICS, DEFAULT_TRIGGERS, DEFAULT_RATING_SCALE, DEFAULT_ACTION_TYPES,
        training_keywords=['training', 'module'], warning_keywords=['warning'],
    )


def kpi_row(name='Asha Rao', employee_id='E1', month='Jan-25', tat=96, major=1.0, quality=0,
            neighbor=92, negative=10, online=95, insuff=0.5):
    """One upload row in the sheet's column layout."""
    return {
        'Month': month, 'FE': name, 'Employee ID': employee_id,
        'TAT %': tat, 'Major Negative %': major, 'Quality Concern % Age': quality,
        'Neighbor Check % Age': neighbor, 'Negative %': negative, 'Online % Age': online,
        'Insuff %': insuff,
    }


class InMemoryRepository:
    """Repository double that keeps everything in lists and counts every write."""

    def __init__(self, config):
        self.config = config
        self.batches = []
        self.results = []
        self.assignments = {}
        self.notifications = {}
        self.writes = 0
        self.commits = 0
        self.rollbacks = 0

    def load_config(self):
        return self.config

    @contextmanager
    def transaction(self):
        snapshot = (list(self.batches), list(self.results), dict(self.assignments), dict(self.notifications))
        try:
            yield self
            self.commits += 1
        except BaseException:
            self.batches, self.results, self.assignments, self.notifications = snapshot
            self.rollbacks += 1
            raise

    def create_batch(self, filename, evaluation):
        self.writes += 1
        self.batches.append((filename, evaluation.period))
        return len(self.batches)

    def save_result(self, batch_id, result):
        self.writes += 1
        self.results.append((batch_id, result))

    def find_assignment(self, user_id, period, action):
        return self.assignments.get((user_id, period, action), {}).get('id')

    def create_assignment(self, batch_id, result, trigger, due_date):
        self.writes += 1
        assignment_id = len(self.assignments) + 1
        self.assignments[(result.user_id, result.period, trigger.action)] = {
            'id': assignment_id, 'type': trigger.type, 'due_date': due_date, 'batch_id': batch_id,
        }
        return assignment_id

    def find_notification(self, user_id, period, role):
        return self.notifications.get((user_id, period, role), {}).get('id')

    def create_notification(self, batch_id, result, request):
        self.writes += 1
        notification_id = len(self.notifications) + 1
        self.notifications[(result.user_id, result.period, request.recipient_role)] = {
            'id': notification_id, 'template': request.template_key,
        }
        return notification_id


@pytest.fixture
def repository(default_config):
    return InMemoryRepository(default_config)


@pytest.fixture
def make_row():
    return kpi_row
