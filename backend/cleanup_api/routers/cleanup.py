from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel

from ..dependencies import (
    get_campaign_store,
    get_creation_coordinator,
    get_join_coordinator,
    get_pricing_engine,
)
from ..domain.cleanup.errors import CampaignNotFound, InvalidInput
from ..domain.cleanup.pricing import PricingEngine
from ..modules.cleanup import CreationCoordinator, JoinCoordinator
from ..repositories.cleanup.campaign_store import CampaignStore

router = APIRouter(tags=["cleanup"])


# Fields stay untyped so the coordinators decide what a malformed value is and
# answer with their field-specific 400 messages.
class CreateCampaignRequest(BaseModel):
    title: Any = None
    description: Any = None
    location: Any = None
    scheduledDate: Any = None


class JoinCampaignRequest(BaseModel):
    campaignId: Any = None
    paymentMethod: Any = "razorpay"


def _caller_uid(request: Request) -> str:
    user = getattr(request.state, "user", None)
    uid = str(getattr(user, "uid", "") or "").strip() if user else ""
    if not uid:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return uid


@router.post("/cleanup/create")
def create_campaign(
    body: CreateCampaignRequest,
    request: Request,
    coordinator: CreationCoordinator = Depends(get_creation_coordinator),
):
    uid = _caller_uid(request)
    result = coordinator.create(
        creator_id=uid,
        title=body.title,
        description=body.description,
        location=body.location,
        scheduled_date=body.scheduledDate,
    )
    return {
        "ok": True,
        "campaignId": result.campaign_id,
        "paymentIntentId": result.payment_intent_id,
        "orderId": result.order_id,
        "amount": result.creator_price,
    }


@router.post("/cleanup/join")
def join_campaign(
    body: JoinCampaignRequest,
    request: Request,
    coordinator: JoinCoordinator = Depends(get_join_coordinator),
):
    uid = _caller_uid(request)
    if body.campaignId is not None and not isinstance(body.campaignId, str):
        raise InvalidInput(message="Campaign ID must be a string", field="campaignId")
    cid = (body.campaignId or "").strip()
    if not cid:
        raise InvalidInput(message="Campaign ID is required", field="campaignId")

    result = coordinator.join(
        campaign_id=cid,
        user_id=uid,
        payment_method=body.paymentMethod or "razorpay",
    )
    return {
        "ok": True,
        "participantId": result.participant_id,
        "paymentIntentId": result.payment_intent_id,
        "orderId": result.order_id,
        "amount": result.amount_paid,
        "participantCount": result.participant_count,
    }


@router.get("/cleanup/{campaignId}")
def get_campaign(
    campaignId: str,
    request: Request,
    store: CampaignStore = Depends(get_campaign_store),
    pricing: PricingEngine = Depends(get_pricing_engine),
):
    cid = str(campaignId or "").strip()
    if not cid:
        raise InvalidInput(message="Campaign ID is required", field="campaignId")

    campaign = store.get_campaign(cid)
    if campaign is None:
        raise CampaignNotFound(message="Campaign not found")

    out: dict[str, object] = {
        "ok": True,
        "campaign": campaign.to_api(),
        "participantCount": campaign.participant_count,
        "currentPrice": campaign.current_price,
        # Only a forming campaign has a next slot to price.
        "nextPrice": pricing.calculate_next_price(campaign.participant_count)
        if campaign.is_joinable and campaign.participant_count >= 1
        else None,
    }

    user = getattr(request.state, "user", None)
    uid = str(getattr(user, "uid", "") or "").strip() if user else ""
    if uid:
        participant = store.get_participant(cid, uid)
        out["isParticipant"] = bool(participant and participant.is_active)

    return out
