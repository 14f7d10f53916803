"""
The on-disk guest list: a UTF-8 CSV file with one row per guest.

The file is the source of truth and is never edited in place. Every
change rewrites the whole table to a temporary file next to it and
renames that over the original, so a crash leaves either the old file or
the new one and never a half-written mix. Rewriting everything on each
change is fine at guest-list scale (hundreds of rows) and is what keeps
the rename atomic.

Processes other than the server that want to change the same file take
an advisory ``flock`` on ``<file>.lock`` for the whole read-change-write
cycle.
"""

import csv
import datetime
import fcntl
import io
import os
import shutil
import tempfile
from pathlib import Path

from csv_rsvp.errors import MalformedDurableFile
from csv_rsvp.model import Attendance, Record

COLUMNS = (
    'name',
    'email',
    'attending',
    'attending_secondary',
    'attending_tertiary',
    'meal_choice',
    'dietary_restrictions',
    'plus_ones',
    'plus_one_attending',
    'plus_one_name',
    'plus_one_meal_choice',
    'plus_one_dietary_restrictions',
    'comments',
    'created_at',
    'updated_at',
)
HEADER_LINE = ','.join(COLUMNS) + '\n'

BOOL_COLUMNS = {'attending_secondary', 'attending_tertiary'}
ATTENDANCE_COLUMNS = {'attending', 'plus_one_attending'}
TIME_COLUMNS = {'created_at', 'updated_at'}


# -------------------------------------------------------------------
# Serialization

def _format(column: str, value) -> str:
    if column in BOOL_COLUMNS:
        return 'true' if value else 'false'
    if column in ATTENDANCE_COLUMNS:
        return value.value
    if column in TIME_COLUMNS:
        return value.isoformat() if value is not None else ''
    return str(value)


def as_row(record) -> dict[str, str]:
    """The cells of ``record`` as they appear in the file, keyed by column."""
    return {column: _format(column, getattr(record, column)) for column in COLUMNS}


def serialize(records) -> str:
    """Render the whole guest list, header first, in the given order."""
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, COLUMNS, lineterminator='\n')
    writer.writeheader()
    for record in records:
        writer.writerow(as_row(record))
    return buffer.getvalue()


def _parse_value(column: str, raw: str):
    # Empty cells are allowed everywhere except the name so that guests can
    # be pre-seeded by hand with just a name and an email.
    if column in BOOL_COLUMNS:
        lowered = raw.strip().lower()
        if lowered not in ('', 'true', 'false'):
            raise ValueError(f'{column} must be true or false, got {raw!r}')
        return lowered == 'true'
    if column in ATTENDANCE_COLUMNS:
        lowered = raw.strip().lower()
        if not lowered:
            return Attendance.UNKNOWN
        try:
            return Attendance(lowered)
        except ValueError:
            raise ValueError(f'{column} must be one of unknown, attending, declined, got {raw!r}') from None
    if column == 'plus_ones':
        if not raw.strip():
            return 0
        count = int(raw)
        if count < 0:
            raise ValueError(f'plus_ones must not be negative, got {count}')
        return count
    if column in TIME_COLUMNS:
        if not raw.strip():
            return None
        stamp = datetime.datetime.fromisoformat(raw.strip())
        if stamp.tzinfo is None:
            stamp = stamp.replace(tzinfo=datetime.timezone.utc)
        return stamp
    return raw


def parse(text: str, path='<memory>') -> list[Record]:
    """Parse a guest list produced by ``serialize`` (or edited by hand).

    Raises MalformedDurableFile on a wrong header, a row with the wrong
    number of cells, a value that does not fit its column, an empty name
    or two rows whose names normalize to the same guest.
    """
    if not text:
        return []
    reader = csv.reader(io.StringIO(text, newline=''))
    try:
        header = next(reader)
    except csv.Error as exc:
        raise MalformedDurableFile(path, reader.line_num, str(exc)) from exc
    if tuple(header) != COLUMNS:
        raise MalformedDurableFile(path, 1, f'unexpected header {header!r}')
    records = []
    seen = {}
    while True:
        try:
            row = next(reader)
        except StopIteration:
            break
        except csv.Error as exc:
            raise MalformedDurableFile(path, reader.line_num, str(exc)) from exc
        line = reader.line_num
        if not row:
            continue
        if len(row) != len(COLUMNS):
            raise MalformedDurableFile(path, line, f'expected {len(COLUMNS)} fields, got {len(row)}')
        values = {}
        for column, raw in zip(COLUMNS, row):
            try:
                values[column] = _parse_value(column, raw)
            except ValueError as exc:
                raise MalformedDurableFile(path, line, str(exc)) from exc
        record = Record(**values)
        if not record.key:
            raise MalformedDurableFile(path, line, 'empty guest name')
        if record.key in seen:
            raise MalformedDurableFile(
                path, line, f'duplicate guest {record.name!r} (first seen on line {seen[record.key]})')
        seen[record.key] = line
        records.append(record)
    return records


def read(path: Path) -> tuple[list[Record], bytes]:
    """Load the file at ``path``; returns the records and the raw bytes."""
    data = path.read_bytes()
    try:
        text = data.decode('utf-8-sig')
    except UnicodeDecodeError as exc:
        raise MalformedDurableFile(path, 1, f'not valid UTF-8: {exc}') from exc
    return parse(text, path), data


# -------------------------------------------------------------------
# Atomic replace

def atomic_write(path: Path, data: bytes) -> None:
    """Write ``data`` to a temp file beside ``path`` and rename it into place."""
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=f'.{path.name}.', suffix='.tmp')
    try:
        with os.fdopen(fd, 'wb') as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        if path.exists():
            shutil.copymode(path, tmp_path)
        os.replace(tmp_path, path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except FileNotFoundError:
            pass
        raise


def file_stamp(path: Path) -> tuple[int, int, int] | None:
    """Identity of the file currently at ``path``; changes on every replace."""
    try:
        st = path.stat()
    except FileNotFoundError:
        return None
    return (st.st_ino, st.st_mtime_ns, st.st_size)


class FileLock:
    """Exclusive advisory lock on ``<path>.lock``, held across processes."""

    def __init__(self, path: Path):
        self.lock_path = path.with_name(path.name + '.lock')
        self._file = None

    def __enter__(self):
        self._file = open(self.lock_path, 'a')
        try:
            fcntl.flock(self._file.fileno(), fcntl.LOCK_EX)
        except BaseException:
            self._file.close()
            self._file = None
            raise
        return self

    def __exit__(self, exc_type, exc, tb):
        try:
            fcntl.flock(self._file.fileno(), fcntl.LOCK_UN)
        finally:
            self._file.close()
            self._file = None
        return False
