import logging
from dataclasses import dataclass
from typing import Optional

from signbank.config import Settings
from signbank.database.base import ContentStore, CounterTable, LabelIndex
from signbank.database.file_store import FileContentStore
from signbank.database.memory import (
    MemoryContentStore,
    MemoryCounterTable,
    MemoryLabelIndex,
)
from signbank.database.redis_manager import (
    RedisContentStore,
    RedisCounterTable,
    RedisLabelIndex,
    RedisManager,
)

logger = logging.getLogger(__name__)


@dataclass
class Stores:
    content: ContentStore
    index: LabelIndex
    counters: CounterTable
    backend: str
    redis_manager: Optional[RedisManager] = None

    async def close(self) -> None:
        await self.content.close()
        await self.index.close()
        await self.counters.close()
        if self.redis_manager is not None:
            await self.redis_manager.close()


def create_stores(settings: Settings,
                  redis_manager: Optional[RedisManager] = None) -> Stores:
    if settings.backend == "redis":
        manager = redis_manager or RedisManager(settings.redis)
        content: ContentStore = RedisContentStore(manager)
        index: LabelIndex = RedisLabelIndex(manager)
        counters: CounterTable = RedisCounterTable(manager)
    elif settings.backend == "memory":
        manager = None
        content = MemoryContentStore()
        index = MemoryLabelIndex()
        counters = MemoryCounterTable()
    else:
        raise NotImplementedError(f"Backend '{settings.backend}' is not supported")

    if settings.media_dir is not None:
        content = FileContentStore(settings.media_dir)

    logger.info(
        f"Storage backend: {settings.backend}, clip payloads in {content.name}")
    return Stores(content=content, index=index, counters=counters,
                  backend=settings.backend, redis_manager=manager)
