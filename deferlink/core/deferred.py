"""
Deferred deep linking + referral attribution.

Click (web, app maybe not installed):
  capture_click → PendingLink saved under
    - the IP fingerprint (always; the only key a fresh install can rebuild)
    - the device id (when the click already carries one)

First launch (app):
  get_pending_link(device_id)            → fast path, app already installed
  get_pending_link_by_fingerprint(ip)    → fresh install, no device id yet
  resolve(device_id, ip)                 → device id first, then fingerprint

Both paths consume the record: it is delivered at most once.

Referrals:
  track_referral(code, referee) → first attribution for a referee wins,
  later attempts are dropped. The return value says which happened; the
  HTTP layer does not expose it.
"""

from datetime import timedelta

from deferlink.core.fingerprint import generate_ip_fingerprint
from deferlink.storage.base import DeepLinkData, LinkStorage, PendingLink, Referral, utcnow

import structlog

logger = structlog.get_logger()

DEFAULT_TTL_SECONDS = 86400 * 7


class DeferredLinker:
    def __init__(self, storage: LinkStorage, ttl_seconds: int = DEFAULT_TTL_SECONDS):
        self.storage = storage
        self.ttl = timedelta(seconds=ttl_seconds)

    # --- Pending links ---

    async def capture_click(
        self,
        url: str,
        params: dict,
        device_id: str | None,
        client_ip: str,
    ) -> PendingLink:
        now = utcnow()
        link = PendingLink(url=url, params=dict(params), created_at=now, expires_at=now + self.ttl)
        fingerprint = generate_ip_fingerprint(client_ip)

        await self.storage.save_pending_link_by_fingerprint(fingerprint, link)
        if device_id:
            await self.storage.save_pending_link(device_id, link)

        logger.info("pending_link_captured",
                    fingerprint=fingerprint,
                    device_id=device_id,
                    params=sorted(params.keys()),
                    expires_at=link.expires_at.isoformat())
        return link

    async def get_pending_link(self, device_id: str) -> DeepLinkData | None:
        link = await self.storage.get_pending_link(device_id)
        if link is None:
            return None
        logger.info("pending_link_consumed", match="device_id", device_id=device_id)
        return DeepLinkData(url=link.url, params=link.params)

    async def get_pending_link_by_fingerprint(self, client_ip: str) -> DeepLinkData | None:
        fingerprint = generate_ip_fingerprint(client_ip)
        link = await self.storage.get_pending_link_by_fingerprint(fingerprint)
        if link is None:
            return None
        logger.info("pending_link_consumed", match="fingerprint", fingerprint=fingerprint)
        return DeepLinkData(url=link.url, params=link.params)

    async def resolve(self, device_id: str | None, client_ip: str) -> DeepLinkData | None:
        if device_id:
            data = await self.get_pending_link(device_id)
            if data is not None:
                return data
        return await self.get_pending_link_by_fingerprint(client_ip)

    # --- Referrals ---

    async def track_referral(
        self,
        referral_code: str,
        referee_id: str,
        metadata: dict | None = None,
    ) -> bool:
        referral = Referral(
            referrer_id=referral_code,
            referee_id=referee_id,
            referral_code=referral_code,
            timestamp=utcnow(),
            metadata=dict(metadata) if metadata is not None else None,
        )
        recorded = await self.storage.save_referral(referral)
        if recorded:
            logger.info("referral_recorded", referrer=referral_code, referee=referee_id)
        else:
            logger.info("referral_ignored", referrer=referral_code, referee=referee_id)
        return recorded

    async def get_referrals(self, referrer_id: str) -> list[Referral]:
        return await self.storage.get_referrals_by_referrer(referrer_id)

    async def get_referral_for_user(self, referee_id: str) -> Referral | None:
        return await self.storage.get_referral_by_referee(referee_id)
