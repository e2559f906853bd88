import datetime
import re
from dataclasses import dataclass
from typing import List, Optional, Union

from .clock import Clock
from .errors import InvalidDate


EPOCH_START = datetime.date(2026, 2, 15)

DAILY_WORDS = ['LMFAO', 'GUCCI', 'SLEEP', 'YANNO', 'WANGE']
SEQUENCE_NUMBERS = [321, 819, 902, 918, 1002]

# length of the original cycle; offsets at or past this have no canonical word
CYCLE_LENGTH = len(DAILY_WORDS)

MONTH_NAMES = [
    'January', 'February', 'March', 'April', 'May', 'June',
    'July', 'August', 'September', 'October', 'November', 'December',
]

_DATE_RE = re.compile(r'^(\d{4})-(\d{2})-(\d{2})$')

DateLike = Union[str, datetime.date]


@dataclass(frozen=True)
class PuzzleId:
    word: str
    sequence_number: int
    date: datetime.date
    day_offset: int


def parse_date(value: DateLike) -> datetime.date:
    """Build a calendar date from its components; no timezone is involved."""
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    m = _DATE_RE.match((value or '').strip())
    if not m:
        raise InvalidDate(f"Date must be in YYYY-MM-DD format, got {value!r}")
    year, month, day = (int(part) for part in m.groups())
    try:
        return datetime.date(year, month, day)
    except ValueError as e:
        raise InvalidDate(f"Invalid calendar date {value!r}: {e}") from e


def date_str(value: DateLike) -> str:
    return parse_date(value).isoformat()


def offset_for_date(value: DateLike) -> int:
    # pre-launch dates floor at 0; is_playable keeps them out of play
    return max(0, (parse_date(value) - EPOCH_START).days)


def date_for_offset(offset: int) -> datetime.date:
    return EPOCH_START + datetime.timedelta(days=offset)


def puzzle_for_offset(offset: int) -> Optional[PuzzleId]:
    if offset < 0:
        raise ValueError("offset must be >= 0")
    if offset >= CYCLE_LENGTH:
        return None
    return PuzzleId(
        word=DAILY_WORDS[offset],
        sequence_number=SEQUENCE_NUMBERS[offset],
        date=date_for_offset(offset),
        day_offset=offset,
    )


def puzzle_for_date(value: DateLike) -> Optional[PuzzleId]:
    return puzzle_for_offset(offset_for_date(value))


def original_cycle_dates() -> List[datetime.date]:
    return [date_for_offset(i) for i in range(CYCLE_LENGTH)]


def in_original_cycle(value: DateLike) -> bool:
    d = parse_date(value)
    return d >= EPOCH_START and offset_for_date(d) < CYCLE_LENGTH


def is_playable(value: DateLike, clock: Clock) -> bool:
    """True when the date lies between launch day and today, both inclusive."""
    d = parse_date(value)
    return EPOCH_START <= d <= clock.today()


def has_launched(clock: Clock) -> bool:
    return clock.today() >= EPOCH_START


def time_until_launch(clock: Clock) -> datetime.timedelta:
    """Countdown for the pre-launch screen; zero once launched."""
    if has_launched(clock):
        return datetime.timedelta(0)
    now = clock.now()
    launch = datetime.datetime.combine(EPOCH_START, datetime.time(0), tzinfo=clock.tz)
    return launch.astimezone(datetime.timezone.utc) - now.astimezone(datetime.timezone.utc)


def today_str(clock: Clock) -> str:
    return clock.today().isoformat()


def display_date(value: DateLike) -> str:
    """e.g. 'February 15, 2026'"""
    d = parse_date(value)
    return f"{MONTH_NAMES[d.month - 1]} {d.day}, {d.year}"


def sequence_number_string(sequence_number: int) -> str:
    """e.g. 'No. 0321'"""
    return f"No. {sequence_number:04d}"
