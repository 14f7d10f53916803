"""
Runtime configuration.

Values come from the environment (a ``.env`` file in the working directory
is loaded first) and can be overridden by command-line flags.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = os.path.dirname(os.path.abspath(__file__))
TEMPLATES_DIR = os.path.join(BASE_DIR, 'templates')
STATIC_DIR = os.path.join(BASE_DIR, 'static')


def _flag(value: str) -> bool:
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


def _addresses(value: str) -> list[str]:
    return [address.strip() for address in value.split(',') if address.strip()]


@dataclass
class Settings:
    csv_path: Path = Path('rsvp.csv')
    from_email: str = ''
    admin_emails: list[str] = field(default_factory=list)
    # Testing mode keeps the guest list fully working but never hands mail
    # to the SMTP server.
    test_mode: bool = False
    host: str = '127.0.0.1'
    port: int = 8080
    server_url: str = 'http://127.0.0.1:8080'
    smtp_server: str = 'smtp.gmail.com'
    smtp_port: int = 587
    smtp_username: str = ''
    smtp_password: str = ''
    smtp_from_name: str = 'Event Host'
    log_level: str = 'INFO'

    @classmethod
    def from_env(cls, environ=None, dotenv: bool = True) -> 'Settings':
        if dotenv:
            load_dotenv()
        env = os.environ if environ is None else environ
        return cls(
            csv_path=Path(env.get('RSVP_CSV', 'rsvp.csv')),
            from_email=env.get('RSVP_FROM_EMAIL', ''),
            admin_emails=_addresses(env.get('RSVP_ADMIN_EMAILS', '')),
            test_mode=_flag(env.get('RSVP_TEST_MODE', 'false')),
            host=env.get('RSVP_HOST', '127.0.0.1'),
            port=int(env.get('RSVP_PORT', '8080')),
            server_url=env.get('RSVP_URL', 'http://127.0.0.1:8080'),
            smtp_server=env.get('SMTP_SERVER', 'smtp.gmail.com'),
            smtp_port=int(env.get('SMTP_PORT', '587')),
            smtp_username=env.get('SMTP_USERNAME', ''),
            smtp_password=env.get('SMTP_PASSWORD', ''),
            smtp_from_name=env.get('SMTP_FROM_NAME', 'Event Host'),
            log_level=env.get('LOG_LEVEL', 'INFO').upper(),
        )
