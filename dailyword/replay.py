"""
Replay lock engine.

A lost date stays locked until the reference-timezone calendar day has rolled
over at least once since the loss. Won dates are terminal. Once the original
word cycle is exhausted, a later date can be linked to a lost original date
and played against that date's word; a win on either side of the link is
copied to the other.
"""
from __future__ import annotations

import datetime
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from . import puzzles
from .clock import next_midnight
from .errors import AlreadySolved, PuzzleNotPlayable, ReplayLocked, StorageUnavailable
from .history import HistoryStore
from .kvstore import KeyValueStore
from .logging_utils import get_logger
from .models import GameOutcome
from .puzzles import DateLike, PuzzleId
from .users import GameContext

logger = get_logger("dailyword.replay")

# never report a full day; at exactly midnight the countdown would read "24h 0m"
MAX_LOCK_REMAINING = datetime.timedelta(days=1) - datetime.timedelta(milliseconds=1)


class ReplayState(str, Enum):
    UNPLAYED = 'unplayed'
    WON = 'won'
    LOST_LOCKED = 'lost_locked'
    LOST_UNLOCKABLE = 'lost_unlockable'


@dataclass(frozen=True)
class ReplayStatus:
    can_replay: bool
    time_remaining: Optional[datetime.timedelta] = None


@dataclass(frozen=True)
class ResolvedPuzzle:
    play_date: datetime.date
    puzzle: Optional[PuzzleId]
    # set when play_date borrows its word from an original-cycle date
    original_date: Optional[datetime.date] = None
    is_replayable: bool = False

    @property
    def solution(self) -> Optional[str]:
        return self.puzzle.word if self.puzzle else None


def lock_status(lost_at: datetime.datetime, now: datetime.datetime) -> ReplayStatus:
    """Lock decision for a loss at ``lost_at`` as seen at ``now`` (same zone)."""
    lost_day = lost_at.astimezone(now.tzinfo).date()
    if (now.date() - lost_day).days >= 1:
        return ReplayStatus(can_replay=True)
    utc = datetime.timezone.utc
    # subtract in UTC: same-zone aware subtraction ignores DST shifts
    remaining = next_midnight(now).astimezone(utc) - now.astimezone(utc)
    remaining = max(datetime.timedelta(0), min(remaining, MAX_LOCK_REMAINING))
    return ReplayStatus(can_replay=False, time_remaining=remaining)


class ReplayLockEngine:
    def __init__(self, store: KeyValueStore, ctx: GameContext):
        self.ctx = ctx
        self.history = HistoryStore(store, ctx)

    async def can_replay(self, date: DateLike) -> ReplayStatus:
        day = puzzles.date_str(date)
        try:
            lost_at = await self.history.loss_timestamp(day)
        except StorageUnavailable as e:
            # fail open: a flaky store must not soft-lock the player
            logger.warning("replay_check_failed_open",
                           extra={"user": self.ctx.user, "date": day, "error": str(e)})
            return ReplayStatus(can_replay=True)
        if lost_at is None:
            return ReplayStatus(can_replay=True)
        return lock_status(lost_at, self.ctx.clock.now())

    async def state(self, date: DateLike) -> ReplayState:
        outcome = await self.history.outcome_for(date)
        if outcome is None:
            return ReplayState.UNPLAYED
        if outcome is GameOutcome.WIN:
            return ReplayState.WON
        status = await self.can_replay(date)
        return ReplayState.LOST_UNLOCKABLE if status.can_replay else ReplayState.LOST_LOCKED

    async def assign_replay_link(self, date: DateLike) -> Optional[datetime.date]:
        """Link an extended-regime date to the earliest unlockable lost original date."""
        day = puzzles.parse_date(date)
        if day < puzzles.EPOCH_START or puzzles.offset_for_date(day) < puzzles.CYCLE_LENGTH:
            return None
        existing = await self.history.replay_link(day)
        if existing is not None:
            return puzzles.parse_date(existing)
        if await self.history.is_played(day):
            return None
        snapshot = await self.history.calendar_history()
        for original in puzzles.original_cycle_dates():
            if snapshot.entries.get(original.isoformat()) is not GameOutcome.LOSE:
                continue
            if not (await self.can_replay(original)).can_replay:
                continue
            await self.history.set_replay_link(day, original)
            logger.info("replay_link_created", extra={
                "user": self.ctx.user, "date": day.isoformat(), "original_date": original.isoformat()})
            return original
        return None

    async def resolve(self, date: DateLike) -> ResolvedPuzzle:
        day = puzzles.parse_date(date)
        if puzzles.in_original_cycle(day) or day < puzzles.EPOCH_START:
            return ResolvedPuzzle(play_date=day, puzzle=puzzles.puzzle_for_date(day))
        linked = await self.history.replay_link(day)
        if linked is None:
            return ResolvedPuzzle(play_date=day, puzzle=None)
        original = puzzles.parse_date(linked)
        original_outcome = await self.history.outcome_for(original)
        replayable = original_outcome is GameOutcome.LOSE and not await self.history.is_played(day)
        return ResolvedPuzzle(
            play_date=day,
            puzzle=puzzles.puzzle_for_date(original),
            original_date=original,
            is_replayable=replayable,
        )

    async def begin_attempt(self, date: DateLike) -> ResolvedPuzzle:
        """Check that ``date`` may be played right now and return its puzzle.

        Raises PuzzleNotPlayable, AlreadySolved or ReplayLocked.
        """
        day = puzzles.parse_date(date)
        if not puzzles.is_playable(day, self.ctx.clock):
            raise PuzzleNotPlayable(f"{day.isoformat()} is not playable")
        await self.assign_replay_link(day)
        resolved = await self.resolve(day)
        if resolved.puzzle is None:
            raise PuzzleNotPlayable(f"No puzzle for {day.isoformat()}")

        outcome = await self.history.outcome_for(day)
        if outcome is GameOutcome.WIN:
            raise AlreadySolved(f"{day.isoformat()} is already solved")
        if outcome is GameOutcome.LOSE:
            status = await self.can_replay(day)
            if not status.can_replay:
                raise ReplayLocked(day.isoformat(), status.time_remaining)
        elif resolved.original_date is not None and not resolved.is_replayable:
            raise PuzzleNotPlayable(f"{resolved.original_date.isoformat()} no longer needs a replay")
        return resolved

    async def propagate(self, date: DateLike, outcome: GameOutcome) -> Optional[datetime.date]:
        """Copy a win across a replay link. Returns the date that was updated, if any."""
        if GameOutcome(outcome) is not GameOutcome.WIN:
            return None
        day = puzzles.parse_date(date)

        linked = await self.history.replay_link(day)
        if linked is not None:
            target = puzzles.parse_date(linked)
        else:
            # an original date won directly: today's replay alias converges too
            today = self.ctx.clock.today()
            if today == day or not puzzles.in_original_cycle(day):
                return None
            alias_of = await self.history.replay_link(today)
            if alias_of is None or puzzles.parse_date(alias_of) != day:
                return None
            target = today

        if target == day or await self.history.outcome_for(target) is GameOutcome.WIN:
            return None
        await self.history.record_outcome(target, GameOutcome.WIN)
        logger.info("replay_link_synced", extra={
            "user": self.ctx.user, "date": day.isoformat(), "original_date": target.isoformat()})
        return target
