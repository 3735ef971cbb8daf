"""
Storage contract for pending links and referrals.

Every backend owns its records outright; the core only ever calls the
methods below. Two pending-link namespaces exist:

  DEVICE       → keyed by the client-supplied device id
  FINGERPRINT  → keyed by the IP-derived fingerprint

The same string may be used as a key in both without collision.

Guarantees every backend must provide:
  - get_pending_link* is consume-once: a record is returned to at most one
    caller, concurrent callers included.
  - An expired record is never returned; it looks exactly like a missing one.
  - save_referral is insert-if-absent on referee_id (first writer wins).
"""

import asyncio
import abc
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

import structlog

logger = structlog.get_logger()


# Longest device id, referral code or user id the backends accept
MAX_KEY_LENGTH = 255


class StorageError(Exception):
    """Backend unreachable or returned data we cannot decode."""


class Namespace(str, Enum):
    DEVICE = "pending"
    FINGERPRINT = "fingerprint"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_dt(value: Any) -> datetime:
    if isinstance(value, datetime):
        dt = value
    else:
        dt = datetime.fromisoformat(value)
    # SQLite hands back naive datetimes
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


@dataclass
class PendingLink:
    url: str
    params: dict[str, Any]
    created_at: datetime
    expires_at: datetime

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or utcnow()) >= self.expires_at

    def to_dict(self) -> dict:
        return {
            "url": self.url,
            "params": self.params,
            "created_at": self.created_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PendingLink":
        try:
            return cls(
                url=data["url"],
                params=dict(data.get("params") or {}),
                created_at=_parse_dt(data["created_at"]),
                expires_at=_parse_dt(data["expires_at"]),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise StorageError(f"Malformed pending link payload: {e}") from e


@dataclass
class Referral:
    referrer_id: str
    referee_id: str
    referral_code: str
    timestamp: datetime
    metadata: dict[str, Any] | None = None

    def to_dict(self) -> dict:
        return {
            "referrer_id": self.referrer_id,
            "referee_id": self.referee_id,
            "referral_code": self.referral_code,
            "timestamp": self.timestamp.isoformat(),
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Referral":
        try:
            return cls(
                referrer_id=data["referrer_id"],
                referee_id=data["referee_id"],
                referral_code=data["referral_code"],
                timestamp=_parse_dt(data["timestamp"]),
                metadata=data.get("metadata"),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise StorageError(f"Malformed referral payload: {e}") from e


@dataclass
class DeepLinkData:
    """What the app receives when it recovers a pending link."""
    url: str
    params: dict[str, Any] = field(default_factory=dict)
    is_deferred: bool = True


class LinkStorage(abc.ABC):
    """Base class for every storage backend."""

    # --- Namespace primitives (implemented per backend) ---

    @abc.abstractmethod
    async def _save_pending(self, namespace: Namespace, key: str, link: PendingLink) -> None:
        ...

    @abc.abstractmethod
    async def _pop_pending(self, namespace: Namespace, key: str) -> PendingLink | None:
        """Atomically remove and return the record, expired or not."""

    @abc.abstractmethod
    async def _delete_pending(self, namespace: Namespace, key: str) -> None:
        ...

    # --- Referrals ---

    @abc.abstractmethod
    async def save_referral(self, referral: Referral) -> bool:
        """Insert if no referral exists for referral.referee_id.
        Returns True if stored, False if an earlier one already exists."""

    @abc.abstractmethod
    async def get_referrals_by_referrer(self, referrer_id: str) -> list[Referral]:
        ...

    @abc.abstractmethod
    async def get_referral_by_referee(self, referee_id: str) -> Referral | None:
        ...

    # --- Housekeeping ---

    async def sweep_expired(self) -> int:
        """Remove expired pending links. Backends with native TTL have nothing to do."""
        return 0

    async def close(self) -> None:
        return None

    # --- Pending links: shared consume-once / expiry logic ---

    async def _save(self, namespace: Namespace, key: str, link: PendingLink) -> None:
        if link.is_expired():
            # Never leave a stale payload behind under this key
            await self._delete_pending(namespace, key)
            logger.info("pending_link_already_expired", namespace=namespace.value, key=key)
            return
        await self._save_pending(namespace, key, link)

    async def _consume(self, namespace: Namespace, key: str) -> PendingLink | None:
        link = await self._pop_pending(namespace, key)
        if link is None:
            return None
        if link.is_expired():
            logger.info("pending_link_expired_on_read", namespace=namespace.value, key=key)
            return None
        return link

    async def save_pending_link(self, device_id: str, link: PendingLink) -> None:
        await self._save(Namespace.DEVICE, device_id, link)

    async def get_pending_link(self, device_id: str) -> PendingLink | None:
        return await self._consume(Namespace.DEVICE, device_id)

    async def delete_pending_link(self, device_id: str) -> None:
        await self._delete_pending(Namespace.DEVICE, device_id)

    async def save_pending_link_by_fingerprint(self, fingerprint: str, link: PendingLink) -> None:
        await self._save(Namespace.FINGERPRINT, fingerprint, link)

    async def get_pending_link_by_fingerprint(self, fingerprint: str) -> PendingLink | None:
        return await self._consume(Namespace.FINGERPRINT, fingerprint)

    async def delete_pending_link_by_fingerprint(self, fingerprint: str) -> None:
        await self._delete_pending(Namespace.FINGERPRINT, fingerprint)


async def run_expiry_sweeper(storage: LinkStorage, interval_seconds: int) -> None:
    """Background task: periodically drop expired pending links."""
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            removed = await storage.sweep_expired()
        except StorageError as e:
            logger.warning("expiry_sweep_failed", error=str(e))
            continue
        if removed:
            logger.info("expiry_sweep", removed=removed)
