"""Async database engine management."""

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from deferlink.config import get_settings

# Lazy initialization: engine created on first use, not at import time.
# This prevents alembic (which runs synchronously) from crashing when
# other modules import from here at the module level.
_engine = None


def create_engine_for(url: str, debug: bool = False) -> AsyncEngine:
    kwargs = {"echo": debug, "pool_pre_ping": True}
    if not url.startswith("sqlite"):
        kwargs.update(pool_size=20, max_overflow=10)
    return create_async_engine(url, **kwargs)


def get_engine() -> AsyncEngine:
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = create_engine_for(settings.database_url, settings.debug)
    return _engine
