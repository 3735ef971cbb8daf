"""
Redis storage backend (redis.asyncio).

Keys:
  {prefix}:pending:{device_id}       → PendingLink JSON, PX = time to expiry
  {prefix}:fingerprint:{fp}          → PendingLink JSON, PX = time to expiry
  {prefix}:referral:{referee_id}     → Referral JSON, no expiry
  {prefix}:referrer:{referrer_id}    → list of referee ids, insertion order

Consume-once is GETDEL (Redis >= 6.2). First-writer-wins is SET NX on the
referee key. The SET NX and the append to the referrer list run as one Lua
script, so a referral is either on both sides or on neither.
"""

import json

import redis.asyncio as redis
from redis.exceptions import RedisError

from deferlink.storage.base import LinkStorage, Namespace, PendingLink, Referral, StorageError, utcnow

import structlog

logger = structlog.get_logger()

# KEYS: referral key, referrer list. ARGV: referral JSON, referee id.
SAVE_REFERRAL_SCRIPT = """
if redis.call("SET", KEYS[1], ARGV[1], "NX") then
    redis.call("RPUSH", KEYS[2], ARGV[2])
    return 1
end
return 0
"""


class RedisStorage(LinkStorage):
    def __init__(self, client: redis.Redis, prefix: str = "deferlink"):
        self._redis = client
        self._prefix = prefix

    @classmethod
    def from_url(cls, url: str, prefix: str = "deferlink") -> "RedisStorage":
        client = redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=5,
            socket_connect_timeout=5,
            health_check_interval=30,
        )
        return cls(client, prefix)

    def _pending_key(self, namespace: Namespace, key: str) -> str:
        return f"{self._prefix}:{namespace.value}:{key}"

    def _referral_key(self, referee_id: str) -> str:
        return f"{self._prefix}:referral:{referee_id}"

    def _referrer_key(self, referrer_id: str) -> str:
        return f"{self._prefix}:referrer:{referrer_id}"

    @staticmethod
    def _loads(raw: str) -> dict:
        try:
            data = json.loads(raw)
        except (TypeError, ValueError) as e:
            raise StorageError(f"Malformed JSON in redis: {e}") from e
        if not isinstance(data, dict):
            raise StorageError("Malformed JSON in redis: expected an object")
        return data

    # --- Pending links ---

    async def _save_pending(self, namespace: Namespace, key: str, link: PendingLink) -> None:
        ttl_ms = int((link.expires_at - utcnow()).total_seconds() * 1000)
        if ttl_ms <= 0:
            await self._delete_pending(namespace, key)
            return
        try:
            await self._redis.set(self._pending_key(namespace, key), json.dumps(link.to_dict()), px=ttl_ms)
        except RedisError as e:
            raise StorageError(f"Redis write failed: {e}") from e

    async def _pop_pending(self, namespace: Namespace, key: str) -> PendingLink | None:
        try:
            raw = await self._redis.getdel(self._pending_key(namespace, key))
        except RedisError as e:
            raise StorageError(f"Redis read failed: {e}") from e
        if raw is None:
            return None
        return PendingLink.from_dict(self._loads(raw))

    async def _delete_pending(self, namespace: Namespace, key: str) -> None:
        try:
            await self._redis.delete(self._pending_key(namespace, key))
        except RedisError as e:
            raise StorageError(f"Redis delete failed: {e}") from e

    # --- Referrals ---

    async def save_referral(self, referral: Referral) -> bool:
        try:
            created = await self._redis.eval(
                SAVE_REFERRAL_SCRIPT,
                2,
                self._referral_key(referral.referee_id),
                self._referrer_key(referral.referrer_id),
                json.dumps(referral.to_dict()),
                referral.referee_id,
            )
        except RedisError as e:
            raise StorageError(f"Redis write failed: {e}") from e
        return bool(created)

    async def get_referrals_by_referrer(self, referrer_id: str) -> list[Referral]:
        try:
            referee_ids = await self._redis.lrange(self._referrer_key(referrer_id), 0, -1)
            if not referee_ids:
                return []
            raws = await self._redis.mget([self._referral_key(r) for r in referee_ids])
        except RedisError as e:
            raise StorageError(f"Redis read failed: {e}") from e
        return [Referral.from_dict(self._loads(raw)) for raw in raws if raw is not None]

    async def get_referral_by_referee(self, referee_id: str) -> Referral | None:
        try:
            raw = await self._redis.get(self._referral_key(referee_id))
        except RedisError as e:
            raise StorageError(f"Redis read failed: {e}") from e
        if raw is None:
            return None
        return Referral.from_dict(self._loads(raw))

    async def close(self) -> None:
        await self._redis.aclose()
        logger.info("redis_storage_closed")
