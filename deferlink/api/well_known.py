"""App verification files for Universal Links / App Links."""

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from deferlink.config import get_settings
from deferlink.core.manifests import apple_app_site_association, asset_links

router = APIRouter(prefix="/.well-known", tags=["well-known"])


@router.get("/apple-app-site-association")
async def get_apple_app_site_association():
    # Served without an extension; iOS requires application/json
    return JSONResponse(apple_app_site_association(get_settings()))


@router.get("/assetlinks.json")
async def get_asset_links():
    return JSONResponse(asset_links(get_settings()))
