"""
Command-line entry point.

    csv-rsvp serve FROM_EMAIL ADMIN_EMAIL... [--csv rsvp.csv] [--test]
    csv-rsvp add NAME [EMAIL] [--plus-ones N] [--plus-one-name NAME] [--url URL | --csv FILE]
    csv-rsvp export [--csv rsvp.csv] [-o FILE]
    csv-rsvp check-smtp

Settings not given on the command line come from the environment (and a
``.env`` file), see ``csv_rsvp.config``.
"""

import argparse
import logging
import sys
from pathlib import Path

import requests

from csv_rsvp.app import RsvpApp, serve
from csv_rsvp.client import ClientError, GuestListClient
from csv_rsvp.config import Settings
from csv_rsvp.errors import DuplicateGuest, InvalidRecord, MalformedDurableFile, PersistenceFailure
from csv_rsvp.model import GuestSeed
from csv_rsvp.notify import Notifier
from csv_rsvp.smtp_check import check_smtp
from csv_rsvp.store import Store

logger = logging.getLogger(__name__)

EXIT_FAILURE = 1
EXIT_MALFORMED = 3


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='csv-rsvp', description='RSVPs to a CSV file')
    parser.add_argument('--log-level', help='Logging level (default: $LOG_LEVEL or INFO)')
    commands = parser.add_subparsers(dest='command', required=True)

    serve_cmd = commands.add_parser('serve', help='Run the RSVP web server')
    serve_cmd.add_argument('from_email', nargs='?', metavar='FROM_EMAIL',
                           help='Sets the "from" email address')
    serve_cmd.add_argument('admins', nargs='*', metavar='ADMIN_EMAIL',
                           help='Admin email addresses, receive a message on every RSVP')
    serve_cmd.add_argument('--csv', type=Path, help='CSV file to use for RSVPs')
    serve_cmd.add_argument('-t', '--test', action='store_true',
                           help="Test mode, doesn't actually send emails")
    serve_cmd.add_argument('--host', help='Address to listen on')
    serve_cmd.add_argument('--port', type=int, help='Port to listen on')

    add_cmd = commands.add_parser('add', help='Add a new person to the guest list')
    add_cmd.add_argument('name', metavar='NAME', help="New person's name")
    add_cmd.add_argument('email', nargs='?', default='', metavar='EMAIL',
                         help="New person's email address")
    add_cmd.add_argument('--plus-ones', type=int, default=0, help='Number of plus ones allowed')
    add_cmd.add_argument('--plus-one-name', default='', help="New person's plus one's name")
    target = add_cmd.add_mutually_exclusive_group()
    target.add_argument('--url', help='URL of the running web server')
    target.add_argument('--csv', type=Path,
                        help='Write to this CSV file directly instead of going through the server')

    export_cmd = commands.add_parser('export', help='Write the current guest list as CSV')
    export_cmd.add_argument('--csv', type=Path, help='CSV file to export')
    export_cmd.add_argument('-o', '--output', type=Path, help='Output file (default: stdout)')

    commands.add_parser('check-smtp', help='Verify the SMTP settings')
    return parser


def cmd_serve(args, settings: Settings, parser) -> int:
    if args.from_email:
        settings.from_email = args.from_email
    if args.admins:
        settings.admin_emails = list(args.admins)
    if args.csv:
        settings.csv_path = args.csv
    if args.test:
        settings.test_mode = True
    if args.host:
        settings.host = args.host
    if args.port:
        settings.port = args.port
    if not settings.test_mode and not (settings.from_email and settings.admin_emails):
        parser.error('serve needs FROM_EMAIL and at least one ADMIN_EMAIL (or --test)')

    store = Store(settings.csv_path)
    app = RsvpApp(store, Notifier(settings))
    serve(app, settings.host, settings.port)
    return 0


def open_existing(path: Path) -> Store | None:
    # Only `serve` may start a new guest list; elsewhere a missing file is a typo.
    if not path.exists():
        logger.error("No guest list at %s", path)
        return None
    return Store(path)


def cmd_add(args, settings: Settings) -> int:
    if args.csv:
        # Direct file access. The file lock keeps this from clobbering a
        # server writing the same file, and the server reloads the file
        # on its next read.
        store = open_existing(args.csv)
        if store is None:
            return EXIT_FAILURE
        record = store.add_guest(args.name, GuestSeed(args.email, args.plus_ones, args.plus_one_name))
        print(f'Added {record.name}')
        return 0
    client = GuestListClient(args.url or settings.server_url)
    row = client.add_guest(args.name, args.email, args.plus_ones, args.plus_one_name)
    print(f"Added {row['name']}")
    return 0


def cmd_export(args, settings: Settings) -> int:
    store = open_existing(args.csv or settings.csv_path)
    if store is None:
        return EXIT_FAILURE
    snapshot = store.snapshot()
    if args.output:
        args.output.write_bytes(snapshot)
    else:
        sys.stdout.buffer.write(snapshot)
        sys.stdout.flush()
    return 0


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    settings = Settings.from_env()
    configure_logging(args.log_level or settings.log_level)

    try:
        if args.command == 'serve':
            return cmd_serve(args, settings, parser)
        if args.command == 'add':
            return cmd_add(args, settings)
        if args.command == 'export':
            return cmd_export(args, settings)
        return 0 if check_smtp(settings) else EXIT_FAILURE
    except MalformedDurableFile as exc:
        logger.error("Refusing to run against a malformed guest list: %s", exc)
        return EXIT_MALFORMED
    except (DuplicateGuest, InvalidRecord, PersistenceFailure, ClientError) as exc:
        logger.error("%s", exc)
        return EXIT_FAILURE
    except requests.RequestException as exc:
        logger.error("Could not reach the server: %s", exc)
        return EXIT_FAILURE


if __name__ == '__main__':
    sys.exit(main())
