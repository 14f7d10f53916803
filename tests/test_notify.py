"""
Tests for the admin notification emails.
"""

import logging
import smtplib
from unittest import mock

import jinja2

from csv_rsvp.config import Settings
from csv_rsvp.model import Attendance, AttendanceTotals, Record
from csv_rsvp.notify import Notifier, null_transport

SNAPSHOT = b'name,email\r\nAlice,alice@example.com\n'


class TestChangeMessage:
    def test_summary_and_attachment(self, notifier):
        msg = notifier.change_message('New RSVP: Alice', 'Alice is coming', SNAPSHOT)

        assert msg['Subject'] == 'New RSVP: Alice'
        assert msg['To'] == 'host@example.com, cohost@example.com'
        assert 'rsvp@example.com' in msg['From']
        body, attachment = msg.get_payload()
        assert body.get_payload(decode=True).decode() == 'Alice is coming'
        assert attachment.get_content_type() == 'text/csv'
        assert attachment.get_filename() == 'rsvp.csv'
        assert attachment.get_payload(decode=True) == SNAPSHOT

    def test_render_change(self, notifier):
        record = Record(name='Alice Smith', attending=Attendance.ATTENDING, plus_ones=1,
                        plus_one_name='Carol', plus_one_attending=Attendance.ATTENDING)
        totals = AttendanceTotals(attending=3, declined=1, awaiting=2)
        summary = notifier.render_change('RSVP', record, totals)
        assert summary.startswith('RSVP: Alice Smith')
        assert 'Attending: attending' in summary
        assert 'Plus one: Carol (attending)' in summary
        assert 'Main event: 3' in summary
        assert 'Not yet answered: 2' in summary

    def test_render_change_without_plus_one(self, notifier):
        summary = notifier.render_change('New guest', Record(name='Dana'), AttendanceTotals())
        assert 'Plus one' not in summary
        assert 'Email: not provided' in summary


class TestDelivery:
    def test_notify_change_uses_transport(self, notifier, transport):
        assert notifier.notify_change('New RSVP', 'summary', SNAPSHOT)
        assert len(transport.messages) == 1

    def test_notify_error(self, notifier, transport):
        assert notifier.notify_error(RuntimeError('disk full'), {'name': 'Alice', 'attending': 'attending'})
        (msg,) = transport.messages
        assert msg['Subject'] == 'Error on RSVP'
        body = msg.get_payload()[0].get_payload(decode=True).decode()
        assert 'disk full' in body
        assert 'name: Alice' in body

    def test_failure_is_logged_not_raised(self, settings, caplog):
        def broken(message):
            raise smtplib.SMTPServerDisconnected('gone')

        notifier = Notifier(settings, transport=broken)
        with caplog.at_level(logging.ERROR, logger='csv_rsvp.notify'):
            assert notifier.notify_change('New RSVP', 'summary', SNAPSHOT) is False
        assert 'Could not send notification' in caplog.text

    def test_no_admins(self, transport):
        notifier = Notifier(Settings(from_email='rsvp@example.com'), transport=transport)
        assert notifier.notify_change('New RSVP', 'summary', SNAPSHOT) is False
        assert transport.messages == []

    def test_testing_mode_sends_nothing(self, settings):
        settings.test_mode = True
        with mock.patch('csv_rsvp.notify.smtplib.SMTP') as smtp:
            notifier = Notifier(settings)
            assert notifier.transport is null_transport
            assert notifier.notify_change('New RSVP', 'summary', SNAPSHOT)
        smtp.assert_not_called()

    def test_smtp_transport(self, settings):
        settings.smtp_username = 'user'
        settings.smtp_password = 'secret'
        with mock.patch('csv_rsvp.notify.smtplib.SMTP') as smtp:
            assert Notifier(settings).notify_change('New RSVP', 'summary', SNAPSHOT)
        smtp.assert_called_once_with('smtp.gmail.com', 587, timeout=30)
        server = smtp.return_value.__enter__.return_value
        server.starttls.assert_called_once_with()
        server.login.assert_called_once_with('user', 'secret')
        server.send_message.assert_called_once()

    def test_unexpected_transport_error(self, settings, caplog):
        def broken(message):
            raise UnicodeEncodeError('ascii', 'pässword', 1, 2, 'ordinal not in range(128)')

        notifier = Notifier(settings, transport=broken)
        with caplog.at_level(logging.ERROR, logger='csv_rsvp.notify'):
            assert notifier.notify_change('New RSVP', 'summary', SNAPSHOT) is False
        assert 'Could not send notification' in caplog.text

    def test_render_failure_is_logged_not_raised(self, settings, transport, caplog):
        notifier = Notifier(settings, transport=transport, env=jinja2.Environment(loader=jinja2.DictLoader({})))
        with caplog.at_level(logging.ERROR, logger='csv_rsvp.notify'):
            assert notifier.notify_record('New RSVP: Alice', 'RSVP', Record(name='Alice'),
                                          AttendanceTotals(), SNAPSHOT) is False
        assert transport.messages == []
        assert 'email/change.txt' in caplog.text

    def test_notify_record(self, notifier, transport):
        assert notifier.notify_record('New guest: Dana', 'New guest', Record(name='Dana'),
                                      AttendanceTotals(awaiting=1), SNAPSHOT)
        (msg,) = transport.messages
        assert msg['Subject'] == 'New guest: Dana'
        body = msg.get_payload()[0].get_payload(decode=True).decode()
        assert body.startswith('New guest: Dana')
