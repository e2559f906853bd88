"""Current-user selection and the per-call game context."""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

from .clock import Clock
from .errors import NoActiveUser
from .kvstore import KeyValueStore
from .logging_utils import get_logger

logger = get_logger("dailyword.users")

CURRENT_USER_KEY = "currentUser"
USERNAME_MAX_LENGTH = 12

_USERNAME_RE = re.compile(r'^[a-zA-Z0-9_-]+$')


@dataclass(frozen=True)
class GameContext:
    """Who is playing and what time it is; passed into every core operation."""

    user: Optional[str]
    clock: Clock

    def require_user(self) -> str:
        if not self.user:
            raise NoActiveUser()
        return self.user


def validate_username(value: str) -> str:
    v = (value or "").strip()
    if len(v) == 0:
        raise ValueError('Username cannot be empty')
    if len(v) > USERNAME_MAX_LENGTH:
        raise ValueError(f'Username too long (max {USERNAME_MAX_LENGTH} characters)')
    # keys are built as "<prefix>_<user>_<date>", so keep usernames to a safe alphabet
    if not _USERNAME_RE.match(v):
        raise ValueError('Username can only contain letters, numbers, underscore, and hyphen')
    return v


async def get_current_user(store: KeyValueStore) -> Optional[str]:
    user = await store.get(CURRENT_USER_KEY)
    if user is None or not user.strip():
        return None
    return user


async def set_current_user(store: KeyValueStore, username: str) -> str:
    user = validate_username(username)
    await store.set(CURRENT_USER_KEY, user)
    logger.info("user_selected", extra={"user": user})
    return user


async def clear_current_user(store: KeyValueStore) -> None:
    await store.remove(CURRENT_USER_KEY)
    logger.info("user_cleared")


async def has_current_user(store: KeyValueStore) -> bool:
    return await get_current_user(store) is not None


async def context_for_current_user(store: KeyValueStore, clock: Clock) -> GameContext:
    return GameContext(user=await get_current_user(store), clock=clock)
