"""
RSVP web application.

This WSGI application lets a guest find their invitation by name, fill in
the RSVP form and see a confirmation. Every change is written to the CSV
guest list before the page is rendered, and the administrators get an
email with the updated list attached.

There is no login. Typing a guest's name is enough to see and change that
guest's answers; the name check exists to keep strangers from inventing
new guests, not to protect the existing ones.

``POST /add`` is the management endpoint used by ``csv-rsvp add`` to add
guests to a running server, so that new guests go through the same store
(and the same lock) as guest submissions.
"""

import json
import logging
import os
import socketserver
import urllib.parse
from wsgiref.simple_server import WSGIRequestHandler, WSGIServer, make_server

from csv_rsvp import csvdb
from csv_rsvp.config import STATIC_DIR
from csv_rsvp.errors import DuplicateGuest, InvalidRecord, PersistenceFailure, RecordNotFound
from csv_rsvp.model import Attendance, GuestSeed, RsvpAnswers
from csv_rsvp.templating import make_environment

logger = logging.getLogger(__name__)

NOT_FOUND_MESSAGE = "Your name wasn't found, sorry!"

MIME_TYPES = {
    '.css': 'text/css',
    '.js': 'application/javascript',
    '.png': 'image/png',
    '.jpg': 'image/jpeg',
    '.jpeg': 'image/jpeg',
    '.gif': 'image/gif',
    '.svg': 'image/svg+xml',
}

TRUE_VALUES = ('on', 'true', 'yes', '1')

HTML = 'text/html; charset=utf-8'
JSON = 'application/json'


# -------------------------------------------------------------------
# Utility functions

def parse_post(environ) -> dict[str, str]:
    """Parse URL-encoded POST data from the request body into a dict."""
    try:
        size = int(environ.get('CONTENT_LENGTH', 0) or 0)
    except (ValueError, TypeError):
        size = 0
    body = environ['wsgi.input'].read(size).decode('utf-8')
    params = urllib.parse.parse_qs(body, keep_blank_values=True)
    # Flatten values: keep only the first value for each key
    return {k: v[0] for k, v in params.items()}


def _attendance(params: dict[str, str], key: str) -> Attendance:
    value = params.get(key, '').strip().lower() or Attendance.UNKNOWN.value
    try:
        return Attendance(value)
    except ValueError:
        raise InvalidRecord(f'{key} must be unknown, attending or declined') from None


def answers_from_form(params: dict[str, str]) -> RsvpAnswers:
    """Build the submitted answers from the RSVP form fields."""
    return RsvpAnswers(
        attending=_attendance(params, 'attending'),
        email=params.get('email', '').strip(),
        attending_secondary=params.get('attending_secondary', '').lower() in TRUE_VALUES,
        attending_tertiary=params.get('attending_tertiary', '').lower() in TRUE_VALUES,
        meal_choice=params.get('meal_choice', '').strip(),
        dietary_restrictions=params.get('dietary_restrictions', '').strip(),
        plus_one_attending=_attendance(params, 'plus_one_attending'),
        plus_one_name=params.get('plus_one_name', '').strip(),
        plus_one_meal_choice=params.get('plus_one_meal_choice', '').strip(),
        plus_one_dietary_restrictions=params.get('plus_one_dietary_restrictions', '').strip(),
        comments=params.get('comments', '').strip(),
    )


def seed_from_form(params: dict[str, str]) -> GuestSeed:
    raw = params.get('plus_ones', '').strip() or '0'
    try:
        plus_ones = int(raw)
    except ValueError:
        raise InvalidRecord(f'plus_ones must be a whole number, got {raw!r}') from None
    return GuestSeed(
        email=params.get('email', '').strip(),
        plus_ones=plus_ones,
        plus_one_name=params.get('plus_one_name', '').strip(),
    )


# -------------------------------------------------------------------
# WSGI application

class RsvpApp:
    """The web front end for one guest list.

    ``store`` is the Store every request reads and writes; ``notifier``
    receives an admin email after every successful change.
    """

    def __init__(self, store, notifier, env=None):
        self.store = store
        self.notifier = notifier
        self.env = env or make_environment()

    def render(self, start_response, status: str, template_name: str, **context):
        body = self.env.get_template(template_name).render(**context)
        start_response(status, [('Content-Type', HTML)])
        return [body.encode('utf-8')]

    def respond_json(self, start_response, status: str, payload: dict):
        data = json.dumps(payload).encode('utf-8')
        start_response(status, [('Content-Type', JSON), ('Content-Length', str(len(data)))])
        return [data]

    def error_page(self, start_response, status: str, error: str):
        return self.render(start_response, status, 'error.html',
                           title='Error', error=error, status_code=status.split()[0])

    def __call__(self, environ, start_response):
        path = environ.get('PATH_INFO', '') or '/'
        method = environ.get('REQUEST_METHOD', 'GET').upper()

        if path.startswith('/static/'):
            return self.static(path, start_response)

        if path == '/':
            if method == 'GET':
                return self.render(start_response, '200 OK', 'index.html', title='RSVP', error=None)
            elif method == 'POST':
                return self.handle_check(parse_post(environ), start_response)

        if path == '/rsvp' and method == 'POST':
            return self.handle_rsvp(parse_post(environ), start_response)

        if path == '/add' and method == 'POST':
            return self.handle_add(parse_post(environ), start_response)

        # Unknown path
        return self.error_page(start_response, '404 Not Found', 'Page not found')

    def static(self, path: str, start_response):
        # Serve files under /static/ from the package's static directory.
        rel_path = path[len('/static/'):]
        file_path = os.path.normpath(os.path.join(STATIC_DIR, rel_path))
        if file_path.startswith(STATIC_DIR + os.sep) and os.path.isfile(file_path):
            ext = os.path.splitext(file_path)[1].lower()
            content_type = MIME_TYPES.get(ext, 'application/octet-stream')
            with open(file_path, 'rb') as f:
                data = f.read()
            start_response('200 OK', [('Content-Type', content_type), ('Content-Length', str(len(data)))])
            return [data]
        start_response('404 Not Found', [('Content-Type', 'text/plain')])
        return [b'Not Found']

    def handle_check(self, params, start_response):
        """Look a guest up and show their RSVP form, pre-filled."""
        record = self.store.lookup(params.get('name', ''))
        if record is None:
            return self.render(start_response, '200 OK', 'index.html', title='RSVP', error=NOT_FOUND_MESSAGE)
        return self.render(start_response, '200 OK', 'rsvp.html', title='RSVP', record=record)

    def handle_rsvp(self, params, start_response):
        """Save a guest's answers and tell the administrators."""
        name = params.get('name', '')
        logger.info("New RSVP! %s", params)
        try:
            answers = answers_from_form(params)
            result = self.store.submit(name, answers)
        except InvalidRecord as exc:
            return self.error_page(start_response, '400 Bad Request', str(exc))
        except RecordNotFound:
            return self.render(start_response, '404 Not Found', 'index.html', title='RSVP', error=NOT_FOUND_MESSAGE)
        except PersistenceFailure as exc:
            self.notifier.notify_error(exc, params)
            return self.error_page(start_response, '500 Internal Server Error',
                                   "We couldn't save your RSVP. The hosts have been told and will be in touch.")

        self.notifier.notify_record(f'New RSVP: {result.record.name}', 'RSVP', result.record,
                                    self.store.attendance(), result.snapshot)
        return self.render(start_response, '200 OK', 'confirm.html', title='Thank you', record=result.record)

    def handle_add(self, params, start_response):
        """Add a guest to the list. Used by the management client."""
        name = params.get('name', '')
        try:
            record = self.store.add_guest(name, seed_from_form(params))
        except InvalidRecord as exc:
            return self.respond_json(start_response, '400 Bad Request', {'error': str(exc)})
        except DuplicateGuest as exc:
            return self.respond_json(start_response, '409 Conflict', {'error': str(exc)})
        except PersistenceFailure as exc:
            return self.respond_json(start_response, '500 Internal Server Error', {'error': str(exc)})

        self.notifier.notify_record(f'New guest: {record.name}', 'New guest', record,
                                    self.store.attendance(), self.store.snapshot())
        return self.respond_json(start_response, '201 Created', csvdb.as_row(record))


# -------------------------------------------------------------------
# Server

class ThreadingWSGIServer(socketserver.ThreadingMixIn, WSGIServer):
    daemon_threads = True


class LoggingRequestHandler(WSGIRequestHandler):
    def log_message(self, format, *args):
        logger.info("%s - %s", self.address_string(), format % args)


def serve(app, host: str, port: int) -> None:
    """Serve ``app`` with one thread per request until interrupted."""
    with make_server(host, port, app, server_class=ThreadingWSGIServer,
                     handler_class=LoggingRequestHandler) as httpd:
        logger.info("Serving on http://%s:%d ... (Ctrl+C to stop)", host, port)
        try:
            httpd.serve_forever()
        except KeyboardInterrupt:
            logger.info("Shutting down")
