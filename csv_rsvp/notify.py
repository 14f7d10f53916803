"""
Admin notifications.

Every successful RSVP or new guest sends the administrators a short
summary with the whole guest list attached as ``rsvp.csv``. Mail is sent
through SMTP, or handed to a no-op transport in testing mode. Delivery is
best effort: a failure is logged and never undoes the change that
triggered it.
"""

import logging
import smtplib
from email import encoders
from email.mime.base import MIMEBase
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr

from csv_rsvp.config import Settings
from csv_rsvp.errors import NotificationFailure
from csv_rsvp.templating import make_environment

logger = logging.getLogger(__name__)

ATTACHMENT_NAME = 'rsvp.csv'


def smtp_transport(settings: Settings):
    """Return a callable that delivers a message through the configured SMTP server."""
    def send(message):
        with smtplib.SMTP(settings.smtp_server, settings.smtp_port, timeout=30) as server:
            server.starttls()
            if settings.smtp_username:
                server.login(settings.smtp_username, settings.smtp_password)
            server.send_message(message)
    return send


def null_transport(message):
    logger.info("Testing mode, not sending %r to %s", message['Subject'], message['To'])


class Notifier:
    def __init__(self, settings: Settings, transport=None, env=None):
        self.settings = settings
        if transport is None:
            transport = null_transport if settings.test_mode else smtp_transport(settings)
        self.transport = transport
        self.env = env or make_environment()

    def render_change(self, action: str, record, totals) -> str:
        template = self.env.get_template('email/change.txt')
        return template.render(action=action, record=record, totals=totals)

    def _message(self, subject: str, body: str) -> MIMEMultipart:
        msg = MIMEMultipart('mixed')
        msg['From'] = formataddr((self.settings.smtp_from_name, self.settings.from_email))
        msg['Reply-To'] = self.settings.from_email
        msg['To'] = ', '.join(self.settings.admin_emails)
        msg['Subject'] = subject
        msg.attach(MIMEText(body, 'plain', 'utf-8'))
        return msg

    def change_message(self, subject: str, summary: str, snapshot: bytes) -> MIMEMultipart:
        msg = self._message(subject, summary)
        attachment = MIMEBase('text', 'csv', charset='utf-8')
        attachment.set_payload(snapshot)
        encoders.encode_base64(attachment)
        attachment.add_header('Content-Disposition', 'attachment', filename=ATTACHMENT_NAME)
        msg.attach(attachment)
        return msg

    def error_message(self, error, params: dict) -> MIMEMultipart:
        body = self.env.get_template('email/error.txt').render(error=error, params=params)
        return self._message('Error on RSVP', body)

    def deliver(self, subject: str, build) -> bool:
        """Build a message with ``build()`` and hand it to the transport.

        Returns False (and logs) if there is nobody to send to or anything
        goes wrong, from rendering the body to talking to the SMTP server.
        """
        if not self.settings.admin_emails:
            logger.warning("No admin addresses configured, dropping %r", subject)
            return False
        try:
            message = build()
            self.transport(message)
        except Exception as exc:
            failure = NotificationFailure(exc)
            logger.error("%s", failure, exc_info=True)
            return False
        logger.info("Sent %r to %s", subject, message['To'])
        return True

    def notify_change(self, subject: str, summary: str, snapshot: bytes) -> bool:
        return self.deliver(subject, lambda: self.change_message(subject, summary, snapshot))

    def notify_record(self, subject: str, action: str, record, totals, snapshot: bytes) -> bool:
        """Summarise a changed record and send it with the guest list attached."""
        def build():
            summary = self.render_change(action, record, totals)
            return self.change_message(subject, summary, snapshot)
        return self.deliver(subject, build)

    def notify_error(self, error, params: dict) -> bool:
        return self.deliver('Error on RSVP', lambda: self.error_message(error, params))
