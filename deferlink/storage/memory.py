"""
In-process storage backend.

One InMemoryStorage instance owns every map; nothing outside it touches
them. All reads and writes go through a single asyncio.Lock, so pop and
insert-if-absent are atomic with respect to other coroutines.
Records are copied in and referrals copied out, so callers never share
state with the store or with each other.

Expiry is lazy (checked on read) plus sweep_expired(), which the app
runs on an interval. Records do not survive a restart.
"""

import asyncio
import copy
from collections import defaultdict

from deferlink.storage.base import LinkStorage, Namespace, PendingLink, Referral, utcnow


class InMemoryStorage(LinkStorage):
    def __init__(self):
        self._lock = asyncio.Lock()
        self._pending: dict[Namespace, dict[str, PendingLink]] = {ns: {} for ns in Namespace}
        self._by_referee: dict[str, Referral] = {}
        self._by_referrer: dict[str, list[Referral]] = defaultdict(list)

    async def _save_pending(self, namespace: Namespace, key: str, link: PendingLink) -> None:
        async with self._lock:
            self._pending[namespace][key] = copy.deepcopy(link)

    async def _pop_pending(self, namespace: Namespace, key: str) -> PendingLink | None:
        async with self._lock:
            return self._pending[namespace].pop(key, None)

    async def _delete_pending(self, namespace: Namespace, key: str) -> None:
        async with self._lock:
            self._pending[namespace].pop(key, None)

    async def save_referral(self, referral: Referral) -> bool:
        async with self._lock:
            if referral.referee_id in self._by_referee:
                return False
            referral = copy.deepcopy(referral)
            self._by_referee[referral.referee_id] = referral
            self._by_referrer[referral.referrer_id].append(referral)
            return True

    async def get_referrals_by_referrer(self, referrer_id: str) -> list[Referral]:
        async with self._lock:
            return copy.deepcopy(self._by_referrer.get(referrer_id, []))

    async def get_referral_by_referee(self, referee_id: str) -> Referral | None:
        async with self._lock:
            return copy.deepcopy(self._by_referee.get(referee_id))

    async def sweep_expired(self) -> int:
        now = utcnow()
        removed = 0
        async with self._lock:
            for records in self._pending.values():
                stale = [k for k, link in records.items() if link.is_expired(now)]
                for k in stale:
                    del records[k]
                removed += len(stale)
        return removed

    def pending_count(self, namespace: Namespace) -> int:
        return len(self._pending[namespace])
