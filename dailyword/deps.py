from typing import Optional

from .clock import Clock, clock_from_settings
from .kvstore import KeyValueStore
from .users import GameContext, context_for_current_user

# configured at startup; tests assign these directly
store: Optional[KeyValueStore] = None
clock: Optional[Clock] = None


def get_store() -> KeyValueStore:
    if store is None:
        raise RuntimeError("storage is not configured")
    return store


def get_clock() -> Clock:
    global clock
    if clock is None:
        clock = clock_from_settings()
    return clock


async def get_context() -> GameContext:
    # resolves currentUser per request; NoActiveUser is raised lazily by the core
    return await context_for_current_user(get_store(), get_clock())
