"""Pytest configuration."""

import os
import time

import pytest

# Ensure test environment
os.environ.setdefault("DL_DEBUG", "true")
os.environ.setdefault("DL_STORAGE_BACKEND", "memory")
os.environ.setdefault("DL_IOS_APP_ID", "123456789")
os.environ.setdefault("DL_IOS_TEAM_ID", "TEAMID123")
os.environ.setdefault("DL_IOS_BUNDLE_ID", "com.example.app")
os.environ.setdefault("DL_ANDROID_PACKAGE_NAME", "com.example.app")
os.environ.setdefault("DL_ANDROID_APP_SCHEME", "exampleapp")
os.environ.setdefault(
    "DL_ANDROID_SHA256_FINGERPRINTS",
    '["AA:BB:CC:DD:EE:FF:00:11:22:33:44:55:66:77:88:99:AA:BB:CC:DD:EE:FF:00:11:22:33:44:55:66:77:88:99"]',
)

from deferlink.models.database import create_engine_for  # noqa: E402
from deferlink.storage.memory import InMemoryStorage  # noqa: E402
from deferlink.storage.redis import SAVE_REFERRAL_SCRIPT, RedisStorage  # noqa: E402
from deferlink.storage.sql import SqlStorage  # noqa: E402


class FakeRedis:
    """Dict-backed stand-in for the handful of redis.asyncio calls we make."""

    def __init__(self):
        self.data: dict[str, object] = {}
        self.expiry: dict[str, float] = {}

    def _alive(self, key):
        exp = self.expiry.get(key)
        if exp is not None and time.time() >= exp:
            self.data.pop(key, None)
            self.expiry.pop(key, None)
        return key in self.data

    async def set(self, key, value, px=None, nx=False):
        if nx and self._alive(key):
            return None
        self.data[key] = value
        self.expiry.pop(key, None)
        if px is not None:
            self.expiry[key] = time.time() + px / 1000
        return True

    async def get(self, key):
        return self.data[key] if self._alive(key) else None

    async def getdel(self, key):
        if not self._alive(key):
            return None
        self.expiry.pop(key, None)
        return self.data.pop(key)

    async def delete(self, *keys):
        removed = 0
        for key in keys:
            if self._alive(key):
                removed += 1
            self.data.pop(key, None)
            self.expiry.pop(key, None)
        return removed

    async def rpush(self, key, *values):
        items = self.data.setdefault(key, [])
        items.extend(values)
        return len(items)

    async def eval(self, script, numkeys, *keys_and_args):
        # Runs the one script we ship, atomically like a real server would
        assert script == SAVE_REFERRAL_SCRIPT
        keys, args = keys_and_args[:numkeys], keys_and_args[numkeys:]
        if await self.set(keys[0], args[0], nx=True) is None:
            return 0
        await self.rpush(keys[1], args[1])
        return 1

    async def lrange(self, key, start, end):
        items = self.data.get(key, [])
        return list(items[start:] if end == -1 else items[start:end + 1])

    async def mget(self, keys):
        return [await self.get(k) for k in keys]

    async def aclose(self):
        return None


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
async def sql_storage(tmp_path):
    engine = create_engine_for(f"sqlite+aiosqlite:///{tmp_path / 'deferlink.db'}")
    storage = SqlStorage(engine)
    await storage.create_tables()
    yield storage
    await storage.close()


@pytest.fixture(params=["memory", "redis", "sql"])
async def storage(request, tmp_path, fake_redis):
    """Every backend, for behaviour all of them must share."""
    if request.param == "memory":
        yield InMemoryStorage()
    elif request.param == "redis":
        yield RedisStorage(fake_redis, prefix="test")
    else:
        engine = create_engine_for(f"sqlite+aiosqlite:///{tmp_path / 'deferlink.db'}")
        sql = SqlStorage(engine)
        await sql.create_tables()
        yield sql
        await sql.close()
