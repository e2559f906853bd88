"""
Per-user play history.

Each entity sits under its own key (see ``key_*`` helpers), so a failed write
never leaves two entities half-updated against each other.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from .clock import from_timestamp_ms
from .errors import MalformedPersistedValue
from .kvstore import KeyValueStore
from .logging_utils import get_logger
from .models import GameOutcome
from .puzzles import DateLike, date_str
from .users import GameContext

logger = get_logger("dailyword.history")


def key_play_count(user: str) -> str:
    return f"playCount_{user}"


def key_stats(user: str) -> str:
    return f"stats_{user}"


def key_history(user: str) -> str:
    return f"history_{user}"


def key_guesses(user: str, date: str) -> str:
    return f"guesses_{user}_{date}"


def key_lost_timestamp(user: str, date: str) -> str:
    return f"lostTimestamp_{user}_{date}"


def key_replay_link(user: str, replay_date: str) -> str:
    return f"replayLink_{user}_{replay_date}"


@dataclass
class HistorySnapshot:
    entries: Dict[str, GameOutcome] = field(default_factory=dict)
    # True when the stored map was unreadable and an empty one was substituted
    recovered: bool = False


def decode_json(key: str, raw: Optional[str], check: Callable[[Any], bool]) -> Any:
    """Parse a stored JSON value, raising MalformedPersistedValue when unusable."""
    try:
        value = json.loads(raw) if raw is not None else None
    except (TypeError, ValueError) as e:
        raise MalformedPersistedValue(key, raw) from e
    if not check(value):
        raise MalformedPersistedValue(key, raw)
    return value


async def load_json(store: KeyValueStore, key: str, default: Any,
                    check: Callable[[Any], bool]) -> Tuple[Any, bool]:
    """Return (value, recovered). Missing keys give the default, unrecovered."""
    raw = await store.get(key)
    if raw is None:
        return default, False
    try:
        return decode_json(key, raw, check), False
    except MalformedPersistedValue:
        logger.warning("malformed_persisted_value", extra={"key": key})
        return default, True


class HistoryStore:
    def __init__(self, store: KeyValueStore, ctx: GameContext):
        self.store = store
        self.ctx = ctx

    @property
    def user(self) -> str:
        return self.ctx.require_user()

    # Outcomes
    async def calendar_history(self) -> HistorySnapshot:
        raw_map, recovered = await load_json(
            self.store, key_history(self.user), {}, lambda v: isinstance(v, dict))
        entries: Dict[str, GameOutcome] = {}
        for day, outcome in raw_map.items():
            try:
                entries[day] = GameOutcome(outcome)
            except ValueError:
                logger.warning("malformed_history_entry", extra={"user": self.user, "date": day})
                recovered = True
        return HistorySnapshot(entries=entries, recovered=recovered)

    async def record_outcome(self, date: DateLike, outcome: GameOutcome) -> None:
        day = date_str(date)
        snapshot = await self.calendar_history()
        entries = {d: o.value for d, o in snapshot.entries.items()}
        entries[day] = GameOutcome(outcome).value
        await self.store.set(key_history(self.user), json.dumps(entries))
        logger.debug("outcome_recorded", extra={"user": self.user, "date": day, "outcome": entries[day]})

    async def outcome_for(self, date: DateLike) -> Optional[GameOutcome]:
        snapshot = await self.calendar_history()
        return snapshot.entries.get(date_str(date))

    async def is_played(self, date: DateLike) -> bool:
        return await self.outcome_for(date) is not None

    # Guesses
    async def save_guesses(self, date: DateLike, guesses: Sequence[str]) -> None:
        await self.store.set(key_guesses(self.user, date_str(date)), json.dumps([g.upper() for g in guesses]))

    async def load_guesses(self, date: DateLike) -> Optional[List[str]]:
        key = key_guesses(self.user, date_str(date))
        if await self.store.get(key) is None:
            return None
        guesses, _ = await load_json(
            self.store, key, [],
            lambda v: isinstance(v, list) and all(isinstance(g, str) for g in v))
        return guesses

    # Loss timestamps
    async def record_loss_timestamp(self, date: DateLike) -> int:
        ms = self.ctx.clock.timestamp_ms()
        await self.store.set(key_lost_timestamp(self.user, date_str(date)), str(ms))
        return ms

    async def loss_timestamp(self, date: DateLike) -> Optional[datetime]:
        key = key_lost_timestamp(self.user, date_str(date))
        raw = await self.store.get(key)
        if raw is None:
            return None
        try:
            ms = int(raw)
        except ValueError:
            logger.warning("malformed_persisted_value", extra={"key": key})
            return None
        return from_timestamp_ms(ms, self.ctx.clock.tz)

    # Replay links
    async def replay_link(self, replay_date: DateLike) -> Optional[str]:
        return await self.store.get(key_replay_link(self.user, date_str(replay_date)))

    async def set_replay_link(self, replay_date: DateLike, original_date: DateLike) -> None:
        await self.store.set(key_replay_link(self.user, date_str(replay_date)), date_str(original_date))
