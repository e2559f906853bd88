"""
Aggregate statistics and the game-completion flow.

First plays move the counters; replays only rewrite the date's history.
Every completion writes history before stats, so a failed history write never
leaves the counters ahead of what was recorded.
"""
from __future__ import annotations

import asyncio
import json
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Dict, List, Optional, Sequence, Tuple

from . import puzzles
from .errors import InvalidGuess, PuzzleNotPlayable
from .game import normalize_guess, outcome_for_guesses
from .history import HistoryStore, key_play_count, key_stats, load_json
from .kvstore import KeyValueStore
from .logging_utils import get_logger
from .models import GameOutcome, Stats
from .puzzles import DateLike
from .replay import ReplayLockEngine
from .users import GameContext

logger = get_logger("dailyword.stats")

_DEFAULT_COUNTERS = {'wins': 0, 'currentStreak': 0, 'maxStreak': 0}


@dataclass
class _UserLock:
    lock: asyncio.Lock
    holders: int = 0


# history_{user}, stats_{user} and playCount_{user} are read-modify-write,
# so every completion for one user runs under that user's lock
_COMPLETION_LOCKS: Dict[str, _UserLock] = {}


@asynccontextmanager
async def _completion_lock(user: str) -> AsyncIterator[None]:
    entry = _COMPLETION_LOCKS.get(user)
    if entry is None:
        entry = _COMPLETION_LOCKS[user] = _UserLock(asyncio.Lock())
    entry.holders += 1
    try:
        async with entry.lock:
            yield
    finally:
        entry.holders -= 1
        if entry.holders == 0 and _COMPLETION_LOCKS.get(user) is entry:
            del _COMPLETION_LOCKS[user]


def _valid_counters(value) -> bool:
    return isinstance(value, dict) and all(
        isinstance(value.get(k, 0), int) and value.get(k, 0) >= 0 for k in _DEFAULT_COUNTERS)


@dataclass(frozen=True)
class CompletionResult:
    date: str
    outcome: GameOutcome
    replay: bool
    stats: Stats
    solution: str
    synced_date: Optional[str] = None


class StatsAggregator:
    def __init__(self, store: KeyValueStore, ctx: GameContext):
        self.store = store
        self.ctx = ctx
        self.history = HistoryStore(store, ctx)
        self.engine = ReplayLockEngine(store, ctx)

    @property
    def user(self) -> str:
        return self.ctx.require_user()

    async def _play_count(self) -> int:
        key = key_play_count(self.user)
        raw = await self.store.get(key)
        if raw is None:
            return 0
        try:
            return max(0, int(raw))
        except ValueError:
            logger.warning("malformed_persisted_value", extra={"key": key})
            return 0

    async def load_stats(self) -> Tuple[Stats, bool]:
        """Current stats plus whether a malformed stored value was replaced."""
        counters, recovered = await load_json(
            self.store, key_stats(self.user), dict(_DEFAULT_COUNTERS), _valid_counters)
        played = await self._play_count()
        stats = Stats(
            played_count=played,
            wins=counters.get('wins', 0),
            current_streak=counters.get('currentStreak', 0),
            max_streak=counters.get('maxStreak', 0),
        )
        return stats, recovered

    async def current_stats(self) -> Stats:
        stats, _ = await self.load_stats()
        return stats

    async def _write_history(self, day: str, outcome: GameOutcome, guesses: Sequence[str]) -> Optional[str]:
        await self.history.save_guesses(day, guesses)
        if outcome is GameOutcome.LOSE:
            await self.history.record_loss_timestamp(day)
        await self.history.record_outcome(day, outcome)
        synced = await self.engine.propagate(day, outcome)
        return synced.isoformat() if synced else None

    async def _first_play(self, outcome: GameOutcome, day: str,
                          guesses: Sequence[str]) -> Tuple[Stats, Optional[str]]:
        synced = await self._write_history(day, outcome, guesses)

        before = await self.current_stats()
        won = outcome is GameOutcome.WIN
        current_streak = before.current_streak + 1 if won else 0
        stats = Stats(
            played_count=before.played_count + 1,
            wins=before.wins + (1 if won else 0),
            current_streak=current_streak,
            max_streak=max(before.max_streak, current_streak),
        )
        await self.store.set(key_stats(self.user), json.dumps({
            'wins': stats.wins,
            'currentStreak': stats.current_streak,
            'maxStreak': stats.max_streak,
        }))
        await self.store.set(key_play_count(self.user), str(stats.played_count))
        logger.info("first_play_recorded", extra={"user": self.user, "date": day, "outcome": outcome.value})
        return stats, synced

    async def _replay(self, day: str, outcome: GameOutcome,
                      guesses: Sequence[str]) -> Tuple[Stats, Optional[str]]:
        synced = await self._write_history(day, outcome, guesses)
        logger.info("replay_recorded", extra={
            "user": self.user, "date": day, "outcome": outcome.value, "replay": True})
        return await self.current_stats(), synced

    async def record_first_play(self, outcome: GameOutcome, date: DateLike,
                                guesses: Sequence[str] = ()) -> Stats:
        async with _completion_lock(self.user):
            stats, _ = await self._first_play(GameOutcome(outcome), puzzles.date_str(date), guesses)
        return stats

    async def record_replay(self, date: DateLike, outcome: GameOutcome,
                            guesses: Sequence[str]) -> Stats:
        async with _completion_lock(self.user):
            stats, _ = await self._replay(puzzles.date_str(date), GameOutcome(outcome), guesses)
        return stats

    async def complete_game(self, date: DateLike, guesses: Sequence[str]) -> CompletionResult:
        """Score a finished board and record it as a first play or a replay."""
        day = puzzles.date_str(date)
        normalized: List[str] = [normalize_guess(g) for g in guesses]
        async with _completion_lock(self.user):
            resolved = await self.engine.begin_attempt(day)
            if resolved.solution is None:
                raise PuzzleNotPlayable(f"No puzzle for {day}")
            outcome = outcome_for_guesses(normalized, resolved.solution)
            if outcome is None:
                raise InvalidGuess("The game is not finished yet")

            replay = await self.history.is_played(day)
            if replay:
                stats, synced = await self._replay(day, outcome, normalized)
            else:
                stats, synced = await self._first_play(outcome, day, normalized)
            return CompletionResult(
                date=day,
                outcome=outcome,
                replay=replay,
                stats=stats,
                solution=resolved.solution,
                synced_date=synced,
            )
