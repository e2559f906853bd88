"""
Key-value persistence substrate for Daily Word.
Every persisted entity lives under its own string key; values are strings.
"""

import threading
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from . import models
from .errors import StorageUnavailable
from .logging_utils import get_logger

logger = get_logger("dailyword.kvstore")


class KeyValueStore(Protocol):
    async def get(self, key: str) -> Optional[str]: ...

    async def set(self, key: str, value: str) -> None: ...

    async def remove(self, key: str) -> None: ...


class MemoryKeyValueStore:
    """Thread-safe in-memory store, durable only for the life of the process"""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})
        self._lock = threading.RLock()
        self._stats = {
            'hits': 0,
            'misses': 0,
            'sets': 0,
            'removals': 0
        }

    async def get(self, key: str) -> Optional[str]:
        with self._lock:
            value = self._data.get(key)
            if value is None:
                self._stats['misses'] += 1
                return None
            self._stats['hits'] += 1
            return value

    async def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value
            self._stats['sets'] += 1

    async def remove(self, key: str) -> None:
        with self._lock:
            if self._data.pop(key, None) is not None:
                self._stats['removals'] += 1

    def snapshot(self) -> Dict[str, str]:
        """Copy of every stored key, for inspection in tests and tooling"""
        with self._lock:
            return dict(self._data)

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            total_requests = self._stats['hits'] + self._stats['misses']
            hit_rate = (self._stats['hits'] / total_requests * 100) if total_requests > 0 else 0
            return {
                **self._stats,
                'total_requests': total_requests,
                'hit_rate_percent': round(hit_rate, 2),
                'size': len(self._data),
            }


class SqlKeyValueStore:
    """Key-value store backed by a single SQL table through an async engine"""

    def __init__(self, engine: AsyncEngine):
        self.engine = engine

    @classmethod
    def from_url(cls, url: str) -> "SqlKeyValueStore":
        connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
        return cls(create_async_engine(url, echo=False, connect_args=connect_args))

    async def create_all(self) -> None:
        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(SQLModel.metadata.create_all)
        except (SQLAlchemyError, OSError) as e:
            raise StorageUnavailable(f"create_all failed: {e}") from e

    async def get(self, key: str) -> Optional[str]:
        try:
            async with AsyncSession(self.engine) as session:
                row = await session.get(models.KeyValue, key)
                return row.value if row is not None else None
        except (SQLAlchemyError, OSError) as e:
            logger.warning("storage_read_failed", extra={"key": key, "error": str(e)})
            raise StorageUnavailable(f"read of {key!r} failed") from e

    async def set(self, key: str, value: str) -> None:
        try:
            async with AsyncSession(self.engine) as session:
                row = await session.get(models.KeyValue, key)
                now = datetime.now(timezone.utc)
                if row is None:
                    row = models.KeyValue(key=key, value=value, updated_at=now)
                else:
                    row.value = value
                    row.updated_at = now
                session.add(row)
                await session.commit()
        except (SQLAlchemyError, OSError) as e:
            logger.warning("storage_write_failed", extra={"key": key, "error": str(e)})
            raise StorageUnavailable(f"write of {key!r} failed") from e

    async def remove(self, key: str) -> None:
        try:
            async with AsyncSession(self.engine) as session:
                row = await session.get(models.KeyValue, key)
                if row is not None:
                    await session.delete(row)
                    await session.commit()
        except (SQLAlchemyError, OSError) as e:
            logger.warning("storage_write_failed", extra={"key": key, "error": str(e)})
            raise StorageUnavailable(f"removal of {key!r} failed") from e

    async def dispose(self) -> None:
        await self.engine.dispose()
