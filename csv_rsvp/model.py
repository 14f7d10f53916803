"""
Guest records and the values that flow in and out of the guest list.

Records are immutable. A submission never edits a record in place; it
produces a new one with ``Record.merge`` so that readers holding the old
record keep seeing a consistent row.
"""

import dataclasses
import datetime
import enum
from dataclasses import dataclass


class Attendance(str, enum.Enum):
    UNKNOWN = 'unknown'
    ATTENDING = 'attending'
    DECLINED = 'declined'


def normalize_name(name: str) -> str:
    """Return the lookup key for a guest name.

    Leading/trailing whitespace is dropped, inner runs of whitespace become
    a single space and the result is case-folded, so ``"  Jane   DOE "``
    and ``"jane doe"`` are the same guest.
    """
    return ' '.join(name.split()).casefold()


@dataclass(frozen=True)
class RsvpAnswers:
    """Everything a guest fills in on the RSVP form."""
    attending: Attendance = Attendance.UNKNOWN
    email: str = ''
    attending_secondary: bool = False
    attending_tertiary: bool = False
    meal_choice: str = ''
    dietary_restrictions: str = ''
    plus_one_attending: Attendance = Attendance.UNKNOWN
    plus_one_name: str = ''
    plus_one_meal_choice: str = ''
    plus_one_dietary_restrictions: str = ''
    comments: str = ''


@dataclass(frozen=True)
class GuestSeed:
    """Optional data an operator supplies when adding a guest."""
    email: str = ''
    plus_ones: int = 0
    plus_one_name: str = ''


@dataclass(frozen=True)
class Record:
    name: str
    email: str = ''
    attending: Attendance = Attendance.UNKNOWN
    attending_secondary: bool = False
    attending_tertiary: bool = False
    meal_choice: str = ''
    dietary_restrictions: str = ''
    plus_ones: int = 0
    plus_one_attending: Attendance = Attendance.UNKNOWN
    plus_one_name: str = ''
    plus_one_meal_choice: str = ''
    plus_one_dietary_restrictions: str = ''
    comments: str = ''
    created_at: datetime.datetime | None = None
    updated_at: datetime.datetime | None = None

    @property
    def key(self) -> str:
        return normalize_name(self.name)

    @property
    def complete(self) -> bool:
        return self.attending is not Attendance.UNKNOWN

    @classmethod
    def from_seed(cls, name: str, seed: GuestSeed, now: datetime.datetime) -> 'Record':
        return cls(
            name=' '.join(name.split()),
            email=seed.email.strip(),
            plus_ones=seed.plus_ones,
            plus_one_name=seed.plus_one_name.strip(),
            created_at=now,
            updated_at=now,
        )

    def merge(self, answers: RsvpAnswers, now: datetime.datetime) -> 'Record':
        """Overwrite prior answers with a new submission.

        The email is only replaced when the submission carries one, and
        ``updated_at`` only moves when some answer actually changed, so a
        repeated identical submission leaves the record untouched.
        """
        changes = dataclasses.asdict(answers)
        if not answers.email.strip():
            del changes['email']
        else:
            changes['email'] = answers.email.strip()
        merged = dataclasses.replace(self, **changes)
        if merged == self:
            return self
        return dataclasses.replace(merged, updated_at=now)

    def answers(self) -> RsvpAnswers:
        """The current answers, used to pre-fill the RSVP form."""
        return RsvpAnswers(**{
            f.name: getattr(self, f.name) for f in dataclasses.fields(RsvpAnswers)
        })


@dataclass(frozen=True)
class AttendanceTotals:
    """Head counts per event. A plus one counts only when attending."""
    attending: int = 0
    attending_secondary: int = 0
    attending_tertiary: int = 0
    declined: int = 0
    awaiting: int = 0

    @classmethod
    def tally(cls, records) -> 'AttendanceTotals':
        attending = secondary = tertiary = declined = awaiting = 0
        for record in records:
            heads = 2 if record.plus_one_attending is Attendance.ATTENDING else 1
            if record.attending is Attendance.ATTENDING:
                attending += heads
            elif record.attending is Attendance.DECLINED:
                declined += 1
            else:
                awaiting += 1
            if record.attending_secondary:
                secondary += heads
            if record.attending_tertiary:
                tertiary += heads
        return cls(attending, secondary, tertiary, declined, awaiting)
