"""
Rate limiter, in-process sliding window.

Limits:
  - Per IP on the click path: configurable (default 30/min)
  - Per IP on pending-link lookups: configurable (default 60/min)

Lookups are limited separately so a client cannot walk device ids or
drain fingerprint slots faster than a real app launch would.
"""

import time
from fastapi import HTTPException, Request
from deferlink.config import get_settings
from deferlink.core.fingerprint import client_ip_from_request

import structlog

logger = structlog.get_logger()

_memory_store: dict[str, list[float]] = {}
_last_prune = 0.0

MAX_TRACKED_KEYS = 10000


def _prune(now: float, window_seconds: int) -> None:
    """Drop clients with no hits left inside the window."""
    global _last_prune
    _last_prune = now
    cutoff = now - window_seconds
    stale = [k for k, hits in _memory_store.items() if not hits or hits[-1] <= cutoff]
    for k in stale:
        del _memory_store[k]


def _sliding_window_check(key: str, limit: int, window_seconds: int = 60) -> tuple[bool, int]:
    now = time.time()
    cutoff = now - window_seconds

    # Periodic cleanup: once per window, or sooner if the map gets large
    if now - _last_prune >= window_seconds or len(_memory_store) > MAX_TRACKED_KEYS:
        _prune(now, window_seconds)

    hits = [t for t in _memory_store.get(key, []) if t > cutoff]

    if len(hits) >= limit:
        if hits:
            _memory_store[key] = hits
        else:
            _memory_store.pop(key, None)
        return False, 0

    hits.append(now)
    _memory_store[key] = hits
    return True, limit - len(hits)


def check_rate_limit(key: str, limit: int, window: int = 60) -> int:
    allowed, remaining = _sliding_window_check(key, limit, window)
    if not allowed:
        logger.warning("rate_limited", key=key.split(":")[0], limit=limit)
        raise HTTPException(
            status_code=429,
            detail="Rate limit exceeded. Slow down.",
            headers={
                "Retry-After": str(window),
                "X-RateLimit-Limit": str(limit),
                "X-RateLimit-Remaining": "0",
            },
        )
    return remaining


def reset_rate_limits() -> None:
    global _last_prune
    _memory_store.clear()
    _last_prune = 0.0


def rate_limit_click(request: Request) -> int:
    settings = get_settings()
    return check_rate_limit(
        f"click:{client_ip_from_request(request)}",
        settings.rate_limit_per_ip_per_minute,
    )


def rate_limit_lookup(request: Request) -> int:
    settings = get_settings()
    return check_rate_limit(
        f"lookup:{client_ip_from_request(request)}",
        settings.rate_limit_lookup_per_ip_per_minute,
    )
