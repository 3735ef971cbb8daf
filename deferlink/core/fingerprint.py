"""
Fingerprints for deferred deep-link matching.

A fingerprint lets us correlate the browser click (before install) with
the first app launch (after install) when no device id exists yet.

Matching uses the IP-only variant. The browser that made the click and
the native app that queries later send different User-Agents, so an
IP+UA fingerprint would never match. Users behind the same NAT/proxy can
collide; that is a known limitation of the approach.

Format: sha256 hex, truncated to 32 chars.
"""

import hashlib
from collections.abc import Mapping

from starlette.requests import Request

FINGERPRINT_LENGTH = 32
UNKNOWN_IP = "unknown"


def _digest(data: str) -> str:
    return hashlib.sha256(data.encode()).hexdigest()[:FINGERPRINT_LENGTH]


def generate_ip_fingerprint(ip: str) -> str:
    return _digest(ip)


def generate_fingerprint(ip: str, user_agent: str) -> str:
    """IP + User-Agent variant. Not used for matching (see module docstring)."""
    return _digest(f"{ip}|{user_agent}")


def get_client_ip(headers: Mapping[str, str], peer_host: str | None = None) -> str:
    """First X-Forwarded-For entry, else the transport peer, else "unknown"."""
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        ip = forwarded.split(",")[0].strip()
        if ip:
            return ip
    return peer_host or UNKNOWN_IP


def client_ip_from_request(request: Request) -> str:
    return get_client_ip(request.headers, request.client.host if request.client else None)
