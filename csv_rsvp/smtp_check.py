"""
Check that the SMTP settings used for admin notifications actually work.
"""

import logging
import smtplib
import socket

from csv_rsvp.config import Settings

logger = logging.getLogger(__name__)


def check_smtp(settings: Settings) -> bool:
    """Resolve, connect, start TLS and log in. Returns True if every step works."""
    logger.info("SMTP Server: %r", settings.smtp_server)
    logger.info("SMTP Port: %d", settings.smtp_port)
    logger.info("Username: %r", settings.smtp_username)
    logger.info("From Email: %r", settings.from_email)
    logger.info("From Name: %r", settings.smtp_from_name)
    logger.info("Password Set: %s", 'Yes' if settings.smtp_password else 'No')
    logger.info("Admins: %s", ', '.join(settings.admin_emails) or 'none')

    try:
        ip = socket.gethostbyname(settings.smtp_server)
    except OSError as e:
        logger.error("DNS resolution failed for %s: %s", settings.smtp_server, e)
        return False
    logger.info("DNS resolution successful: %s -> %s", settings.smtp_server, ip)

    try:
        with smtplib.SMTP(settings.smtp_server, settings.smtp_port, timeout=10) as server:
            logger.info("SMTP connection successful")
            server.starttls()
            logger.info("TLS started successfully")
            if settings.smtp_username:
                server.login(settings.smtp_username, settings.smtp_password)
                logger.info("Authentication successful")
    except (smtplib.SMTPException, OSError) as e:
        logger.error("SMTP test failed: %s", e)
        return False

    logger.info("All email checks passed")
    return True
