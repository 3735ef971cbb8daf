"""Platform detection and deep-link URL helpers."""

from enum import Enum
from urllib.parse import parse_qsl, quote, urlsplit

from user_agents import parse as parse_ua


class Platform(str, Enum):
    IOS = "ios"
    ANDROID = "android"
    WEB = "web"
    UNKNOWN = "unknown"


def detect_platform(user_agent: str | None) -> Platform:
    if not user_agent:
        return Platform.WEB
    family = parse_ua(user_agent).os.family
    if family == "iOS":
        return Platform.IOS
    if family == "Android":
        return Platform.ANDROID
    return Platform.WEB


def parse_query_params(url: str) -> dict[str, str]:
    """Query string → dict. Repeated keys: last value wins."""
    return dict(parse_qsl(urlsplit(url).query, keep_blank_values=True))


def encode_params(params: dict) -> str:
    return "&".join(
        f"{quote(str(k), safe='')}={quote(str(v), safe='')}" for k, v in params.items()
    )


def build_deep_link(scheme: str, path: str, params: dict) -> str:
    """build_deep_link("myapp", "refer", {"code": "A"}) → "myapp://refer?code=A"."""
    query = encode_params(params)
    return f"{scheme}://{path}{'?' + query if query else ''}"
