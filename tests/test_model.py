import datetime

from csv_rsvp.model import Attendance, GuestSeed, Record, RsvpAnswers, normalize_name

NOW = datetime.datetime(2026, 6, 1, tzinfo=datetime.timezone.utc)
LATER = NOW + datetime.timedelta(hours=1)


def test_normalize_name():
    assert normalize_name('  Jane   DOE ') == 'jane doe'
    assert normalize_name('Jane\nDoe') == 'jane doe'
    assert normalize_name('STRASSE') == normalize_name('straße')
    assert normalize_name('   ') == ''


def test_merge_without_changes_keeps_record():
    record = Record(name='Jane', email='jane@example.com', created_at=NOW, updated_at=NOW)
    assert record.merge(record.answers(), LATER) is record


def test_merge_bumps_updated_at():
    record = Record(name='Jane', created_at=NOW, updated_at=NOW)
    merged = record.merge(RsvpAnswers(attending=Attendance.DECLINED), LATER)
    assert merged.attending is Attendance.DECLINED
    assert merged.complete
    assert merged.created_at == NOW
    assert merged.updated_at == LATER


def test_merge_keeps_email_when_blank():
    record = Record(name='Jane', email='jane@example.com')
    assert record.merge(RsvpAnswers(email='  '), LATER).email == 'jane@example.com'


def test_from_seed():
    record = Record.from_seed(' Jane  Doe ', GuestSeed(' jane@example.com ', 1, ' John '), NOW)
    assert record == Record(name='Jane Doe', email='jane@example.com', plus_ones=1,
                            plus_one_name='John', created_at=NOW, updated_at=NOW)
    assert record.key == 'jane doe'
