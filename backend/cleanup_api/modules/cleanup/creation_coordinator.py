from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Mapping

from ...domain.cleanup.errors import InvalidInput
from ...domain.cleanup.models import (
    EXECUTION_STATUS_PENDING,
    INTENT_STATUS_PENDING,
    Campaign,
    CampaignState,
    Location,
    Participant,
    PaymentIntent,
    new_campaign_id,
    new_payment_intent_id,
    now_iso,
)
from ...domain.cleanup.pricing import PricingEngine, rupees_to_paise
from ...infrastructure.payments.gateway import PaymentGateway
from ...observability.logging import get_logger
from ...repositories.cleanup.campaign_store import CampaignStore, CampaignTransaction
from .conflict_retry import retry_on_conflict
from .payment_orders import request_order_id

_MAX_TITLE_LEN = 200
_MAX_DESCRIPTION_LEN = 5000
_MAX_ADDRESS_LEN = 500


@dataclass(frozen=True, slots=True)
class CreateResult:
    campaign_id: str
    payment_intent_id: str
    order_id: str
    creator_price: int


def _is_number(v: Any) -> bool:
    return isinstance(v, (int, float)) and not isinstance(v, bool) and math.isfinite(v)


def parse_location(location: Location | Mapping[str, Any] | None) -> Location:
    if location is None:
        raise InvalidInput(message="Location (lat/lng) is required", field="location")
    if isinstance(location, Location):
        lat, lng, address = location.lat, location.lng, location.address
    elif isinstance(location, Mapping):
        lat, lng, address = location.get("lat"), location.get("lng"), location.get("address")
    else:
        raise InvalidInput(message="Location must be an object with lat/lng", field="location")

    if lat is None or lng is None:
        raise InvalidInput(message="Location (lat/lng) is required", field="location")
    if not _is_number(lat) or not -90 <= lat <= 90:
        raise InvalidInput(message="Invalid latitude: must be a number between -90 and 90", field="location.lat")
    if not _is_number(lng) or not -180 <= lng <= 180:
        raise InvalidInput(message="Invalid longitude: must be a number between -180 and 180", field="location.lng")

    if address is not None and not isinstance(address, str):
        raise InvalidInput(message="Address must be a string", field="location.address")
    addr = (address or "").strip()
    if len(addr) > _MAX_ADDRESS_LEN:
        raise InvalidInput(message=f"Address must be at most {_MAX_ADDRESS_LEN} characters", field="location.address")
    return Location(lat=float(lat), lng=float(lng), address=addr or None)


def parse_scheduled_date(value: datetime | str | None, *, now: datetime) -> datetime:
    """Parse an ISO-8601 instant (naive values are UTC) that must lie strictly in the future."""
    if value is None or (isinstance(value, str) and not value.strip()):
        raise InvalidInput(message="Scheduled date is required", field="scheduledDate")

    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        raw = value.strip()
        if raw.endswith(("Z", "z")):
            raw = raw[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(raw)
        except ValueError as e:
            raise InvalidInput(
                message="Scheduled date must be an ISO-8601 date/time", field="scheduledDate", cause=e
            ) from e
    else:
        raise InvalidInput(message="Scheduled date must be an ISO-8601 date/time", field="scheduledDate")

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc)

    if dt <= now:
        raise InvalidInput(message="Scheduled date must be in the future", field="scheduledDate")
    return dt


def _iso_utc(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


class CreationCoordinator:
    """
    Creates a campaign with its creator as participant #1.

    The creator pays the base price. Campaign, payment intent and participant
    are written in one transaction, after the payment hold exists.
    """

    def __init__(
        self,
        *,
        store: CampaignStore,
        gateway: PaymentGateway | None,
        pricing: PricingEngine,
        payments_enabled: bool,
        currency: str = "INR",
        max_attempts: int = 3,
        clock: Callable[[], datetime] | None = None,
    ):
        self._store = store
        self._gateway = gateway
        self._pricing = pricing
        self._payments_enabled = bool(payments_enabled)
        self._currency = currency
        self._max_attempts = max_attempts
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._log = get_logger("cleanup.create")

    def create(
        self,
        *,
        creator_id: str,
        title: str | None,
        location: Location | Mapping[str, Any] | None,
        scheduled_date: datetime | str | None,
        description: str | None = None,
    ) -> CreateResult:
        uid = str(creator_id or "").strip()
        if not uid:
            raise InvalidInput(message="Creator ID is required", field="creatorId")

        if title is not None and not isinstance(title, str):
            raise InvalidInput(message="Title must be a string", field="title")
        clean_title = (title or "").strip()
        if not clean_title:
            raise InvalidInput(message="Title is required", field="title")
        if len(clean_title) > _MAX_TITLE_LEN:
            raise InvalidInput(message=f"Title must be at most {_MAX_TITLE_LEN} characters", field="title")

        if description is not None and not isinstance(description, str):
            raise InvalidInput(message="Description must be a string", field="description")
        clean_description = (description or "").strip()
        if len(clean_description) > _MAX_DESCRIPTION_LEN:
            raise InvalidInput(
                message=f"Description must be at most {_MAX_DESCRIPTION_LEN} characters", field="description"
            )

        loc = parse_location(location)
        scheduled = parse_scheduled_date(scheduled_date, now=self._clock())

        def _attempt() -> CreateResult:
            return self._create_once(
                creator_id=uid,
                title=clean_title,
                description=clean_description or None,
                location=loc,
                scheduled_date=_iso_utc(scheduled),
            )

        result = retry_on_conflict(
            _attempt,
            max_attempts=self._max_attempts,
            operation="create the campaign",
            user_id=uid,
        )
        self._log.info(
            "cleanup_campaign_created",
            campaign_id=result.campaign_id,
            user_id=uid,
            payment_intent_id=result.payment_intent_id,
            creator_price=result.creator_price,
            payments_enabled=self._payments_enabled,
        )
        return result

    def _create_once(
        self,
        *,
        creator_id: str,
        title: str,
        description: str | None,
        location: Location,
        scheduled_date: str,
    ) -> CreateResult:
        creator_price = self._pricing.calculate_price(1)
        amount_paise = rupees_to_paise(creator_price)

        campaign_id = new_campaign_id()
        payment_intent_id = new_payment_intent_id()

        # Fails before any write when the hold cannot be created.
        order_id = request_order_id(
            gateway=self._gateway,
            payments_enabled=self._payments_enabled,
            payment_intent_id=payment_intent_id,
            amount_paise=amount_paise,
            currency=self._currency,
            notes={"campaignId": campaign_id, "userId": creator_id, "type": "cleanup_creation"},
        )

        now = now_iso()
        campaign = Campaign(
            campaign_id=campaign_id,
            title=title,
            description=description,
            location=location,
            scheduled_date=scheduled_date,
            created_by=creator_id,
            participant_count=1,
            current_price=creator_price,
            campaign_state=CampaignState.FORMING.value,
            base_price=self._pricing.base_price,
            floor_price=self._pricing.floor_price,
            created_at=now,
            updated_at=now,
        )
        intent = PaymentIntent(
            payment_intent_id=payment_intent_id,
            user_id=creator_id,
            campaign_id=campaign_id,
            amount=amount_paise,
            currency=self._currency,
            order_id=order_id,
            status=INTENT_STATUS_PENDING,
            execution_status=EXECUTION_STATUS_PENDING,
            created_at=now,
            updated_at=now,
        )
        participant = Participant(
            campaign_id=campaign_id,
            user_id=creator_id,
            payment_intent_id=payment_intent_id,
            amount_paid=creator_price,
            joined_at=now,
            updated_at=now,
        )

        def _write(tx: CampaignTransaction) -> None:
            tx.set_campaign(campaign)
            tx.set_payment_intent(intent)
            tx.set_participant(participant)

        self._store.run_transaction(_write)
        return CreateResult(
            campaign_id=campaign_id,
            payment_intent_id=payment_intent_id,
            order_id=order_id,
            creator_price=creator_price,
        )
