"""
Click intake: /link, /link/{path}, /refer/{referral_code}

Flow:
  1. Rate limit per IP
  2. Screen crawlers (automation → 404, link previews → no capture)
  3. Collect params: query string + path params, reject overlong device ids
  4. Capture the pending link (fingerprint always, device id if sent)
  5. Respond by platform:
       iOS / Android + app scheme → smart redirect page (app, then store)
       iOS / Android, no scheme   → 302 to the store listing
       anything else              → JSON hint to open on mobile
"""

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse

from deferlink.api.deps import get_linker
from deferlink.config import get_settings
from deferlink.core.crawlers import screen_user_agent
from deferlink.core.deferred import DeferredLinker
from deferlink.core.fingerprint import client_ip_from_request
from deferlink.core.platforms import Platform, detect_platform, parse_query_params
from deferlink.core.smart_redirect import render_smart_redirect
from deferlink.middleware.rate_limit import rate_limit_click
from deferlink.storage.base import MAX_KEY_LENGTH

import structlog

logger = structlog.get_logger()
router = APIRouter(tags=["deep-links"])


def _device_id(request: Request) -> str | None:
    device_id = (
        request.query_params.get("deviceId")
        or request.query_params.get("device_id")
        or request.headers.get("x-device-id")
    )
    if device_id and len(device_id) > MAX_KEY_LENGTH:
        raise HTTPException(status_code=400, detail="Device id too long")
    return device_id


def _store_target(platform: Platform) -> tuple[str, str]:
    """(store_url, app_scheme) for a mobile platform."""
    settings = get_settings()
    if platform == Platform.IOS:
        return f"https://apps.apple.com/app/id{settings.ios_app_id}", settings.ios_app_scheme
    return (
        f"https://play.google.com/store/apps/details?id={settings.android_package_name}",
        settings.android_app_scheme,
    )


@router.get("/link")
@router.get("/link/{path:path}")
@router.get("/refer/{referral_code}")
async def handle_deep_link(
    request: Request,
    linker: DeferredLinker = Depends(get_linker),
):
    settings = get_settings()
    rate_limit_click(request)

    ua = request.headers.get("user-agent")
    verdict = screen_user_agent(ua)
    if verdict.block:
        logger.warning("crawler_blocked", path=request.url.path, reason=verdict.reason)
        raise HTTPException(status_code=404, detail="Not found")

    device_id = _device_id(request)
    url = str(request.url)
    params: dict = parse_query_params(url)
    for key, value in request.path_params.items():
        if value:
            params[key] = value

    if verdict.skip_capture:
        logger.info("pending_link_skipped", path=request.url.path, reason=verdict.reason)
    else:
        await linker.capture_click(
            url=url,
            params=params,
            device_id=device_id,
            client_ip=client_ip_from_request(request),
        )

    platform = detect_platform(ua)
    if platform not in (Platform.IOS, Platform.ANDROID):
        return JSONResponse({
            "message": "Please open this link on your mobile device",
            "platform": platform.value,
        })

    store_url, app_scheme = _store_target(platform)
    if not app_scheme:
        return RedirectResponse(url=store_url, status_code=302)

    return HTMLResponse(render_smart_redirect(
        app_scheme=app_scheme,
        params=params,
        store_url=store_url,
        platform=platform,
        package_name=settings.android_package_name,
        timeout_ms=settings.fallback_timeout_ms,
    ))
