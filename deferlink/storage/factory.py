"""Pick a storage backend from settings."""

from deferlink.config import Settings
from deferlink.storage.base import LinkStorage

import structlog

logger = structlog.get_logger()

BACKENDS = ("memory", "redis", "sql")


def build_storage(settings: Settings) -> LinkStorage:
    backend = settings.storage_backend.lower()

    if backend == "memory":
        from deferlink.storage.memory import InMemoryStorage
        storage = InMemoryStorage()
    elif backend == "redis":
        from deferlink.storage.redis import RedisStorage
        storage = RedisStorage.from_url(settings.redis_url, prefix=settings.redis_key_prefix)
    elif backend == "sql":
        from deferlink.models.database import get_engine
        from deferlink.storage.sql import SqlStorage
        storage = SqlStorage(get_engine())
    else:
        raise ValueError(f"Unknown storage backend {settings.storage_backend!r}, expected one of {BACKENDS}")

    logger.info("storage_selected", backend=backend)
    return storage
