"""
The guest list: every RSVP record, held in memory and backed by one CSV file.

One ``Store`` is built at startup and handed to the web app (or to the
CLI). Reads take no lock unless another process has replaced the file, in
which case it is reloaded first. Each change runs under a per-store lock
and the cross-process file lock, writes the whole table atomically and
only then swaps in the new in-memory state, so nobody ever sees a change
that is not on disk and a failed write leaves the previous state in place.

Looking a guest up by name is a convenience, not access control: anyone
who knows a guest's name can see and change that guest's RSVP.
"""

import datetime
import logging
import threading
from pathlib import Path
from typing import NamedTuple

from csv_rsvp import csvdb
from csv_rsvp.errors import DuplicateGuest, InvalidRecord, MalformedDurableFile, PersistenceFailure, RecordNotFound
from csv_rsvp.model import Attendance, AttendanceTotals, GuestSeed, Record, RsvpAnswers, normalize_name

logger = logging.getLogger(__name__)


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class SubmitResult(NamedTuple):
    record: Record
    snapshot: bytes


class _State(NamedTuple):
    records: tuple[Record, ...]
    index: dict[str, int]
    plus_ones: dict[str, int]
    snapshot: bytes
    stamp: tuple[int, int, int] | None


def _build_state(records, snapshot: bytes, stamp) -> _State:
    records = tuple(records)
    index = {}
    plus_ones = {}
    for position, record in enumerate(records):
        index[record.key] = position
        if record.plus_one_name.strip():
            plus_ones.setdefault(normalize_name(record.plus_one_name), position)
    return _State(records, index, plus_ones, snapshot, stamp)


class Store:
    """In-memory guest list persisted to ``path``.

    Raises MalformedDurableFile from the constructor if the file cannot be
    parsed. A missing or empty file is initialised with the header row.
    """

    def __init__(self, path, clock=utcnow):
        self.path = Path(path)
        self._clock = clock
        self._lock = threading.Lock()
        with self._lock, csvdb.FileLock(self.path):
            if not self.path.exists() or self.path.stat().st_size == 0:
                logger.info("Creating guest list %s", self.path)
                csvdb.atomic_write(self.path, csvdb.HEADER_LINE.encode('utf-8'))
            self._state = self._read()
        logger.info("Loaded %d guests from %s", len(self._state.records), self.path)

    def _read(self) -> _State:
        records, data = csvdb.read(self.path)
        return _build_state(records, data, csvdb.file_stamp(self.path))

    def _current(self) -> _State:
        """The published state, reloaded first if another process replaced the file."""
        state = self._state
        if csvdb.file_stamp(self.path) == state.stamp:
            return state
        with self._lock:
            try:
                return self._refresh()
            except (MalformedDurableFile, OSError):
                # Keep serving what we have; the next read tries again.
                logger.error("Could not reload %s, keeping the loaded guest list", self.path, exc_info=True)
                return self._state

    # -------------------------------------------------------------------
    # Reads

    def lookup(self, name: str) -> Record | None:
        """Find a guest by name, or by their plus one's name.

        ``"Alice Smith & Carol"`` is tried as a whole first and then part by
        part. A guest's own name always wins over a plus-one match.
        """
        state = self._current()
        candidates = [name]
        if '&' in name:
            candidates.extend(name.split('&'))
        keys = [key for key in map(normalize_name, candidates) if key]
        for table in (state.index, state.plus_ones):
            for key in keys:
                position = table.get(key)
                if position is not None:
                    return state.records[position]
        return None

    def snapshot(self) -> bytes:
        """The CSV bytes last written to disk."""
        return self._current().snapshot

    def records(self) -> tuple[Record, ...]:
        return self._current().records

    def attendance(self) -> AttendanceTotals:
        return AttendanceTotals.tally(self._current().records)

    def __len__(self):
        return len(self._current().records)

    # -------------------------------------------------------------------
    # Changes

    def submit(self, name: str, answers: RsvpAnswers) -> SubmitResult:
        """Record a guest's answers. The guest must already be on the list."""
        if not isinstance(answers.attending, Attendance) or not isinstance(answers.plus_one_attending, Attendance):
            raise InvalidRecord('attendance must be unknown, attending or declined')
        key = normalize_name(name)

        def change(state):
            position = state.index.get(key)
            if position is None:
                raise RecordNotFound(name)
            previous = state.records[position]
            record = previous.merge(answers, self._clock())
            if record is previous:
                return None, record
            return state.records[:position] + (record,) + state.records[position + 1:], record

        record, snapshot = self._mutate(change)
        logger.info("RSVP from %s: %s", record.name, record.attending.value)
        return SubmitResult(record, snapshot)

    def add_guest(self, name: str, seed: GuestSeed = GuestSeed()) -> Record:
        """Append a new guest with an unknown RSVP."""
        key = normalize_name(name)
        if not key:
            raise InvalidRecord('guest name must not be empty')
        if not isinstance(seed.plus_ones, int) or seed.plus_ones < 0:
            raise InvalidRecord(f'plus_ones must be a non-negative integer, got {seed.plus_ones!r}')

        def change(state):
            if key in state.index:
                existing = state.records[state.index[key]]
                logger.warning("Attempted to add %r, but %r exists already", name, existing.name)
                raise DuplicateGuest(name)
            record = Record.from_seed(name, seed, self._clock())
            return state.records + (record,), record

        record, _ = self._mutate(change)
        logger.info("Added guest %s", record.name)
        return record

    def _mutate(self, change):
        """Run ``change`` against the current state and persist the result.

        ``change(state)`` returns ``(records, result)``; ``records`` is None
        when nothing needs writing. Raises PersistenceFailure if the file
        could not be locked, re-read or replaced.
        """
        with self._lock:
            try:
                with csvdb.FileLock(self.path):
                    state = self._refresh()
                    records, result = change(state)
                    if records is None:
                        return result, state.snapshot
                    data = csvdb.serialize(records).encode('utf-8')
                    csvdb.atomic_write(self.path, data)
                    self._state = _build_state(records, data, csvdb.file_stamp(self.path))
                    return result, data
            except OSError as exc:
                logger.error("Could not persist guest list to %s", self.path, exc_info=True)
                raise PersistenceFailure(self.path, exc) from exc

    def _refresh(self) -> _State:
        # Another process holding the file lock may have replaced the file
        # since we last read or wrote it.
        state = self._state
        if csvdb.file_stamp(self.path) != state.stamp:
            logger.info("%s changed on disk, reloading", self.path)
            state = self._read()
            self._state = state
        return state
