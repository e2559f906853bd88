from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlmodel import SQLModel, Field


class KeyValue(SQLModel, table=True):
    key: str = Field(primary_key=True)
    value: str = ""
    updated_at: Optional[datetime] = None


class GameOutcome(str, Enum):
    WIN = 'win'
    LOSE = 'lose'


@dataclass(frozen=True)
class Stats:
    played_count: int = 0
    wins: int = 0
    current_streak: int = 0
    max_streak: int = 0

    @property
    def win_percentage(self) -> int:
        if self.played_count <= 0:
            return 0
        return round(100 * self.wins / self.played_count)

    def as_dict(self) -> dict:
        return {
            'played': self.played_count,
            'wins': self.wins,
            'current_streak': self.current_streak,
            'max_streak': self.max_streak,
            'win_percentage': self.win_percentage,
        }
