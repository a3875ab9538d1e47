"""
api/routes/v1/referrals.py -- Read-side referral endpoints for the current user.

Routes:
  GET /api/v1/referrals        -- direct referrals with their program status
  GET /api/v1/referrals/stats  -- own referral key, own referrer, total/active counts

Both require auth. A user can only ever see their own referrals: the
referrer id always comes from the authenticated identity, never from input.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.models import ReferralRow, ReferralStatsResponse
from auth.dependencies import get_current_user
from auth.models import User
from referral.service import ReferralService

router = APIRouter()


@router.get("/referrals", response_model=list[ReferralRow])
async def list_referrals(
    request: Request,
    current_user: User = Depends(get_current_user),
) -> list[ReferralRow]:
    referrals: ReferralService = request.app.state.referrals
    return [
        ReferralRow(
            id=r.id,
            name=r.name,
            created_at=r.created_at or "",
            program_active=referrals.is_node_program_active(r),
        )
        for r in referrals.get_referrals(current_user.id)
    ]


@router.get("/referrals/stats", response_model=ReferralStatsResponse)
async def referral_stats(
    request: Request,
    current_user: User = Depends(get_current_user),
) -> ReferralStatsResponse:
    """Summary for the invite page: the key to share and how many invites still count."""
    referrals: ReferralService = request.app.state.referrals
    return ReferralStatsResponse(
        referral_key=current_user.key,
        referrer_id=referrals.get_referrer_id(current_user.id),
        total_referrals=len(referrals.get_referrals(current_user.id)),
        active_referrals=referrals.get_active_referrals_count(current_user.id),
    )
