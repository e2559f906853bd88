import anyio

from . import config
from .kvstore import SqlKeyValueStore
from .logging_utils import get_logger, setup_logging

logger = get_logger("dailyword.init_db")


async def init_db(url: str = config.DATABASE_URL) -> SqlKeyValueStore:
    store = SqlKeyValueStore.from_url(url)
    await store.create_all()
    logger.info("db_initialized", extra={"path": url})
    return store


async def _main() -> None:
    store = await init_db()
    await store.dispose()


if __name__ == '__main__':
    setup_logging(config.LOG_LEVEL)
    anyio.run(_main)
