"""
Client for adding guests to a running RSVP server.

New guests go through the server's ``POST /add`` endpoint instead of
being written to the CSV file directly, so they never race with guest
submissions the server is handling.

Usage:

    from csv_rsvp.client import GuestListClient

    client = GuestListClient('http://127.0.0.1:8080')
    client.add_guest('Jane Doe', email='jane@example.com', plus_ones=1)
"""

import requests

from csv_rsvp.errors import DuplicateGuest

DEFAULT_BASE_URL = 'http://127.0.0.1:8080'
DEFAULT_TIMEOUT = 30


class ClientError(Exception):
    """Raised when the server answers with an HTTP error."""

    def __init__(self, message: str, status_code: int = 0, body=None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class GuestListClient:
    """
    Client for the management side of the RSVP server.

    Args:
        base_url: Server URL. Defaults to http://127.0.0.1:8080.
        timeout: Request timeout in seconds. Defaults to 30.
    """

    def __init__(self, base_url: str = DEFAULT_BASE_URL, timeout: int = DEFAULT_TIMEOUT):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self._session = requests.Session()

    def _request(self, method: str, path: str, **kwargs) -> dict[str, str]:
        url = f'{self.base_url}{path}'
        kwargs.setdefault('timeout', self.timeout)
        resp = self._session.request(method, url, **kwargs)
        if resp.status_code >= 400:
            try:
                body = resp.json()
            except ValueError:
                body = resp.text
            raise ClientError(
                f'Server error {resp.status_code}: {body}',
                status_code=resp.status_code,
                body=body,
            )
        return resp.json()

    def add_guest(
        self,
        name: str,
        email: str = '',
        plus_ones: int = 0,
        plus_one_name: str = '',
    ) -> dict[str, str]:
        """
        Add a guest with an unanswered RSVP.

        Returns:
            The new guest's row, keyed by CSV column.

        Raises:
            DuplicateGuest: a guest with the same name is already on the list.
            ClientError: any other error response.
        """
        form = {
            'name': name,
            'email': email,
            'plus_ones': str(plus_ones),
            'plus_one_name': plus_one_name,
        }
        try:
            return self._request('POST', '/add', data=form)
        except ClientError as exc:
            if exc.status_code == 409:
                raise DuplicateGuest(name) from exc
            raise
