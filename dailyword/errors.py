"""Error taxonomy for the Daily Word core."""
from datetime import timedelta
from typing import Optional


class DailyWordError(Exception):
    """Base class for every error raised by the core."""


class NoActiveUser(DailyWordError):
    """A per-user operation was attempted with no user selected."""

    def __init__(self, message: str = "No active user selected"):
        super().__init__(message)


class MalformedPersistedValue(DailyWordError):
    """A stored value could not be decoded."""

    def __init__(self, key: str, raw: Optional[str]):
        super().__init__(f"Malformed value stored under {key!r}")
        self.key = key
        self.raw = raw


class StorageUnavailable(DailyWordError):
    """The key-value substrate failed to complete an operation."""


class InvalidDate(DailyWordError, ValueError):
    pass


class InvalidGuess(DailyWordError, ValueError):
    pass


class PuzzleNotPlayable(DailyWordError):
    """The date has no playable puzzle (pre-launch, future, or exhausted cycle)."""


class AlreadySolved(DailyWordError):
    """The date was won; a won puzzle is never replayed."""


class ReplayLocked(DailyWordError):
    """The date was lost and no day boundary has passed since the loss."""

    def __init__(self, date: str, time_remaining: Optional[timedelta]):
        super().__init__(f"Replay of {date} is locked")
        self.date = date
        self.time_remaining = time_remaining
