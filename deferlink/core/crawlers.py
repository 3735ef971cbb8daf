"""
Crawler screening for the click endpoint.

Two tiers:
  1. Automation clients (curl, python-requests, headless browsers) → 404,
     nothing recorded.
  2. Link-preview bots (Slackbot, facebookexternalhit, ...) → served a
     normal response, but no pending link is captured. Their IP would
     otherwise take the fingerprint slot of whoever shared the link.
"""

import re
from dataclasses import dataclass

from user_agents import parse as parse_ua

AUTOMATION_UA_PATTERNS: list[re.Pattern] = [
    re.compile(p, re.IGNORECASE) for p in [
        r"curl/",
        r"wget/",
        r"python-requests",
        r"python-urllib",
        r"Go-http-client",
        r"scrapy",
        r"aiohttp",
        r"node-fetch",
        r"HeadlessChrome",
        r"PhantomJS",
        r"puppeteer",
    ]
]

PREVIEW_BOT_UA_PATTERNS: list[re.Pattern] = [
    re.compile(p, re.IGNORECASE) for p in [
        r"facebookexternalhit",
        r"Twitterbot",
        r"LinkedInBot",
        r"Slackbot",
        r"TelegramBot",
        r"Discordbot",
        r"WhatsApp",
        r"Googlebot",
        r"bingbot",
    ]
]


@dataclass(frozen=True)
class CrawlerVerdict:
    block: bool = False
    skip_capture: bool = False
    reason: str = ""


def screen_user_agent(user_agent: str | None) -> CrawlerVerdict:
    ua = user_agent or ""

    for pattern in AUTOMATION_UA_PATTERNS:
        if pattern.search(ua):
            return CrawlerVerdict(block=True, skip_capture=True, reason=f"automation:{pattern.pattern}")

    for pattern in PREVIEW_BOT_UA_PATTERNS:
        if pattern.search(ua):
            return CrawlerVerdict(skip_capture=True, reason=f"preview:{pattern.pattern}")

    if ua and parse_ua(ua).is_bot:
        return CrawlerVerdict(skip_capture=True, reason="ua_parser_bot")

    return CrawlerVerdict()
