"""
Pending-link recovery, called by the app on launch.

GET /v1/pending-link/{device_id}      → match by device id only
GET /v1/pending-link?device_id=...    → device id if given, else caller IP fingerprint

Every successful response consumes the record.
"""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Path, Query, Request
from pydantic import BaseModel, Field

from deferlink.api.deps import get_linker
from deferlink.core.deferred import DeferredLinker
from deferlink.core.fingerprint import client_ip_from_request
from deferlink.middleware.rate_limit import rate_limit_lookup
from deferlink.storage.base import MAX_KEY_LENGTH, DeepLinkData

router = APIRouter(prefix="/v1", tags=["pending-links"])


class DeepLinkResponse(BaseModel):
    url: str
    params: dict[str, Any]
    is_deferred: bool = Field(True, serialization_alias="isDeferred")


def _respond(data: DeepLinkData | None) -> DeepLinkResponse:
    if data is None:
        raise HTTPException(status_code=404, detail="No pending link found")
    return DeepLinkResponse(url=data.url, params=data.params, is_deferred=data.is_deferred)


@router.get("/pending-link", response_model=DeepLinkResponse)
async def resolve_pending_link(
    request: Request,
    device_id: str | None = Query(None, max_length=MAX_KEY_LENGTH),
    linker: DeferredLinker = Depends(get_linker),
):
    rate_limit_lookup(request)
    data = await linker.resolve(device_id, client_ip_from_request(request))
    return _respond(data)


@router.get("/pending-link/{device_id}", response_model=DeepLinkResponse)
async def get_pending_link(
    request: Request,
    device_id: str = Path(max_length=MAX_KEY_LENGTH),
    linker: DeferredLinker = Depends(get_linker),
):
    rate_limit_lookup(request)
    return _respond(await linker.get_pending_link(device_id))
