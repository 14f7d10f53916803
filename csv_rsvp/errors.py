"""Failures raised by the guest list and its collaborators."""


class RsvpError(Exception):
    """Base class for every error the RSVP service raises on purpose."""


class MalformedDurableFile(RsvpError):
    """The CSV file could not be parsed. Fatal at startup."""

    def __init__(self, path, line: int, reason: str):
        self.path = path
        self.line = line
        self.reason = reason
        super().__init__(f"{path}, line {line}: {reason}")


class InvalidRecord(RsvpError):
    """A seed or submission carries values the guest list cannot store."""


class RecordNotFound(RsvpError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"No guest named {name!r}")


class DuplicateGuest(RsvpError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Guest {name!r} already exists")


class PersistenceFailure(RsvpError):
    """Writing the CSV file failed; the in-memory guest list was left unchanged."""

    def __init__(self, path, cause: BaseException):
        self.path = path
        self.cause = cause
        super().__init__(f"Could not write {path}: {cause}")


class NotificationFailure(RsvpError):
    """An admin email could not be delivered. Logged, never propagated."""

    def __init__(self, cause: BaseException):
        self.cause = cause
        super().__init__(f"Could not send notification: {cause}")
