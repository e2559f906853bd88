import anyio
import pytest

from dailyword.errors import StorageUnavailable
from dailyword.kvstore import MemoryKeyValueStore, SqlKeyValueStore


def test_memory_store_set_get_remove():
    s = MemoryKeyValueStore()

    async def run():
        assert await s.get('k') is None
        await s.set('k', 'v')
        assert await s.get('k') == 'v'
        await s.set('k', 'w')
        assert await s.get('k') == 'w'
        await s.remove('k')
        assert await s.get('k') is None
        # removing a missing key is a no-op
        await s.remove('k')

    anyio.run(run)
    stats = s.get_stats()
    assert stats['sets'] == 2 and stats['removals'] == 1
    assert stats['hits'] == 2 and stats['misses'] == 2
    assert stats['size'] == 0


def test_memory_store_snapshot_is_a_copy():
    s = MemoryKeyValueStore({'a': '1'})
    snap = s.snapshot()
    snap['b'] = '2'
    assert s.snapshot() == {'a': '1'}


def test_sql_store_persists_across_instances(tmp_path):
    url = f"sqlite+aiosqlite:///{tmp_path / 'kv.db'}"

    async def write():
        s = SqlKeyValueStore.from_url(url)
        await s.create_all()
        await s.set('history_bob', '{"2026-02-15": "win"}')
        await s.set('currentUser', 'bob')
        await s.set('currentUser', 'alice')
        await s.remove('missing')
        await s.dispose()

    async def read():
        s = SqlKeyValueStore.from_url(url)
        try:
            return await s.get('history_bob'), await s.get('currentUser'), await s.get('nope')
        finally:
            await s.dispose()

    anyio.run(write)
    assert anyio.run(read) == ('{"2026-02-15": "win"}', 'alice', None)


def test_sql_store_surfaces_storage_errors(tmp_path):
    # no create_all: the table does not exist, so every call fails
    url = f"sqlite+aiosqlite:///{tmp_path / 'empty.db'}"

    async def run():
        s = SqlKeyValueStore.from_url(url)
        try:
            with pytest.raises(StorageUnavailable):
                await s.get('k')
            with pytest.raises(StorageUnavailable):
                await s.set('k', 'v')
        finally:
            await s.dispose()

    anyio.run(run)
