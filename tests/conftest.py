import datetime

import pytest

from csv_rsvp import csvdb
from csv_rsvp.config import Settings
from csv_rsvp.model import Attendance, Record
from csv_rsvp.notify import Notifier
from csv_rsvp.store import Store

START = datetime.datetime(2026, 6, 1, 12, 0, tzinfo=datetime.timezone.utc)


class FakeClock:
    """Deterministic clock; each call moves forward one minute."""

    def __init__(self, start=START):
        self.now = start

    def __call__(self):
        self.now += datetime.timedelta(minutes=1)
        return self.now


class RecordingTransport:
    def __init__(self):
        self.messages = []

    def __call__(self, message):
        self.messages.append(message)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def guest_csv(tmp_path):
    """A guest list with Alice (no answer yet, one plus one) and Bob (attending)."""
    path = tmp_path / 'rsvp.csv'
    records = [
        Record(name='Alice Smith', email='alice@example.com', plus_ones=1,
               created_at=START, updated_at=START),
        Record(name='Bob Jones', email='bob@example.com', attending=Attendance.ATTENDING,
               meal_choice='Fish', created_at=START, updated_at=START),
    ]
    path.write_text(csvdb.serialize(records), encoding='utf-8')
    return path


@pytest.fixture
def store(guest_csv, clock):
    return Store(guest_csv, clock=clock)


@pytest.fixture
def settings():
    return Settings(
        from_email='rsvp@example.com',
        admin_emails=['host@example.com', 'cohost@example.com'],
    )


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def notifier(settings, transport):
    return Notifier(settings, transport=transport)
