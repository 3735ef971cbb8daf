"""
Referral attribution API.

POST /v1/referrals/track               → always {"success": true}
GET  /v1/referrals/user/{referee_id}   → the referee's single referral, or 404
GET  /v1/referrals/{referrer_id}       → every referral for a referrer (may be empty)

A referee already attributed to someone keeps that attribution; a repeat
track call is accepted and silently ignored.
"""

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import AliasChoices, BaseModel, Field

from deferlink.api.deps import get_linker
from deferlink.core.deferred import DeferredLinker
from deferlink.storage.base import MAX_KEY_LENGTH, Referral

router = APIRouter(prefix="/v1/referrals", tags=["referrals"])


# --- Schemas ---

class TrackReferralRequest(BaseModel):
    # Mobile SDKs send camelCase
    referral_code: str = Field(
        min_length=1, max_length=MAX_KEY_LENGTH,
        validation_alias=AliasChoices("referral_code", "referralCode"),
    )
    user_id: str = Field(
        min_length=1, max_length=MAX_KEY_LENGTH,
        validation_alias=AliasChoices("user_id", "userId"),
    )
    metadata: dict[str, Any] | None = None


class ReferralResponse(BaseModel):
    referrer_id: str
    referee_id: str
    referral_code: str
    timestamp: datetime
    metadata: dict[str, Any] | None = None

    @classmethod
    def from_referral(cls, referral: Referral) -> "ReferralResponse":
        return cls(
            referrer_id=referral.referrer_id,
            referee_id=referral.referee_id,
            referral_code=referral.referral_code,
            timestamp=referral.timestamp,
            metadata=referral.metadata,
        )


class ReferralListResponse(BaseModel):
    referrals: list[ReferralResponse]


# --- Endpoints ---

@router.post("/track")
async def track_referral(
    req: TrackReferralRequest,
    linker: DeferredLinker = Depends(get_linker),
):
    await linker.track_referral(req.referral_code, req.user_id, req.metadata)
    return {"success": True}


@router.get("/user/{referee_id}", response_model=ReferralResponse)
async def get_referral_for_user(
    referee_id: str,
    linker: DeferredLinker = Depends(get_linker),
):
    referral = await linker.get_referral_for_user(referee_id)
    if referral is None:
        raise HTTPException(status_code=404, detail="No referral found")
    return ReferralResponse.from_referral(referral)


@router.get("/{referrer_id}", response_model=ReferralListResponse)
async def list_referrals(
    referrer_id: str,
    linker: DeferredLinker = Depends(get_linker),
):
    referrals = await linker.get_referrals(referrer_id)
    return ReferralListResponse(referrals=[ReferralResponse.from_referral(r) for r in referrals])
