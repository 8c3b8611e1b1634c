from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class CampaignState(str, Enum):
    FORMING = "forming"
    LOCKED = "locked"
    EXECUTED = "executed"
    CANCELED = "canceled"


class ParticipantStatus(str, Enum):
    ACTIVE = "active"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


# Payment intent lifecycle values owned by this service; capture/refund
# transitions belong to the payment workflow.
INTENT_STATUS_PENDING = "pending"
EXECUTION_STATUS_PENDING = "pending"
REFUND_STATUS_NONE = "none"


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def new_campaign_id() -> str:
    return "camp_" + uuid.uuid4().hex[:18]


def new_payment_intent_id() -> str:
    return "pi_" + uuid.uuid4().hex[:18]


@dataclass(frozen=True, slots=True)
class Location:
    lat: float
    lng: float
    address: str | None = None

    def to_api(self) -> dict[str, Any]:
        out: dict[str, Any] = {"lat": self.lat, "lng": self.lng}
        if self.address:
            out["address"] = self.address
        return out


@dataclass(slots=True)
class Campaign:
    campaign_id: str
    title: str
    location: Location
    scheduled_date: str
    created_by: str
    participant_count: int
    current_price: int
    campaign_state: str
    base_price: int
    floor_price: int
    description: str | None = None
    created_at: str | None = None
    updated_at: str | None = None

    @property
    def is_joinable(self) -> bool:
        return self.campaign_state == CampaignState.FORMING.value

    def to_api(self) -> dict[str, Any]:
        return {
            "id": self.campaign_id,
            "title": self.title,
            "description": self.description,
            "location": self.location.to_api(),
            "scheduledDate": self.scheduled_date,
            "currentPrice": self.current_price,
            "participantCount": self.participant_count,
            "campaignState": self.campaign_state,
            "createdBy": self.created_by,
            "basePrice": self.base_price,
            "floorPrice": self.floor_price,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


@dataclass(slots=True)
class Participant:
    campaign_id: str
    user_id: str
    payment_intent_id: str
    amount_paid: int
    status: str = ParticipantStatus.ACTIVE.value
    refund_status: str = REFUND_STATUS_NONE
    joined_at: str | None = None
    updated_at: str | None = None

    @property
    def is_active(self) -> bool:
        return self.status == ParticipantStatus.ACTIVE.value


@dataclass(slots=True)
class PaymentIntent:
    payment_intent_id: str
    user_id: str
    campaign_id: str
    amount: int
    currency: str
    order_id: str | None
    status: str
    execution_status: str = EXECUTION_STATUS_PENDING
    created_at: str | None = None
    updated_at: str | None = None


# Campaign fields the join workflow is allowed to change in place.
MUTABLE_CAMPAIGN_FIELDS = ("participant_count", "current_price", "campaign_state", "updated_at")
