from __future__ import annotations

from dataclasses import dataclass

from ...domain.cleanup.errors import AlreadyJoined, CampaignNotFound, CampaignNotJoinable, InvalidInput
from ...domain.cleanup.models import (
    EXECUTION_STATUS_PENDING,
    INTENT_STATUS_PENDING,
    Participant,
    PaymentIntent,
    new_payment_intent_id,
    now_iso,
)
from ...domain.cleanup.pricing import PricingEngine, rupees_to_paise
from ...infrastructure.payments.gateway import PaymentGateway
from ...observability.logging import get_logger
from ...repositories.cleanup.campaign_store import CampaignStore, CampaignTransaction
from .conflict_retry import retry_on_conflict
from .payment_orders import request_order_id

SUPPORTED_PAYMENT_METHODS = ("razorpay",)


@dataclass(frozen=True, slots=True)
class JoinResult:
    participant_id: str
    payment_intent_id: str
    order_id: str
    amount_paid: int
    participant_count: int


class JoinCoordinator:
    """
    Adds a participant to a forming campaign at the current group price.

    One attempt = one store transaction: read campaign + participant, price the
    next slot, reserve a payment hold, stage intent + participant + campaign
    counters. A commit conflict (another join landed first) restarts the whole
    attempt with fresh reads and a fresh order.
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
    ):
        self._store = store
        self._gateway = gateway
        self._pricing = pricing
        self._payments_enabled = bool(payments_enabled)
        self._currency = currency
        self._max_attempts = max_attempts
        self._log = get_logger("cleanup.join")

    def join(self, *, campaign_id: str, user_id: str, payment_method: str = "razorpay") -> JoinResult:
        cid = str(campaign_id or "").strip()
        uid = str(user_id or "").strip()
        if not cid:
            raise InvalidInput(message="Campaign ID is required", field="campaignId")
        if not uid:
            raise InvalidInput(message="User ID is required", field="userId")
        method = str(payment_method or "razorpay").strip().lower()
        if method not in SUPPORTED_PAYMENT_METHODS:
            raise InvalidInput(message=f"Unsupported payment method: {payment_method}", field="paymentMethod")

        result = retry_on_conflict(
            lambda: self._store.run_transaction(lambda tx: self._join_once(tx, cid, uid)),
            max_attempts=self._max_attempts,
            operation="join the campaign",
            campaign_id=cid,
            user_id=uid,
        )
        self._log.info(
            "cleanup_campaign_joined",
            campaign_id=cid,
            user_id=uid,
            payment_intent_id=result.payment_intent_id,
            amount_paid=result.amount_paid,
            participant_count=result.participant_count,
            payments_enabled=self._payments_enabled,
        )
        return result

    def _join_once(self, tx: CampaignTransaction, campaign_id: str, user_id: str) -> JoinResult:
        campaign = tx.get_campaign(campaign_id)
        if campaign is None:
            raise CampaignNotFound(message="Campaign not found")

        if not campaign.is_joinable:
            raise CampaignNotJoinable(
                message=(
                    "Campaign is not accepting new participants. "
                    f"Current state: {campaign.campaign_state}"
                ),
                campaign_state=campaign.campaign_state,
            )

        existing = tx.get_participant(campaign_id, user_id)
        if existing is not None and existing.is_active:
            raise AlreadyJoined(message="User has already joined this campaign")

        new_count = campaign.participant_count + 1
        new_price = self._pricing.calculate_next_price(campaign.participant_count)
        amount_paise = rupees_to_paise(new_price)

        payment_intent_id = new_payment_intent_id()
        # No writes are staged until a valid order reference exists.
        order_id = request_order_id(
            gateway=self._gateway,
            payments_enabled=self._payments_enabled,
            payment_intent_id=payment_intent_id,
            amount_paise=amount_paise,
            currency=self._currency,
            notes={"campaignId": campaign_id, "userId": user_id, "type": "cleanup_join"},
        )

        now = now_iso()
        tx.set_payment_intent(
            PaymentIntent(
                payment_intent_id=payment_intent_id,
                user_id=user_id,
                campaign_id=campaign_id,
                amount=amount_paise,
                currency=self._currency,
                order_id=order_id,
                status=INTENT_STATUS_PENDING,
                execution_status=EXECUTION_STATUS_PENDING,
                created_at=now,
                updated_at=now,
            )
        )
        tx.set_participant(
            Participant(
                campaign_id=campaign_id,
                user_id=user_id,
                payment_intent_id=payment_intent_id,
                amount_paid=new_price,
                joined_at=now,
                updated_at=now,
            )
        )
        tx.update_campaign(
            campaign_id,
            participant_count=new_count,
            current_price=new_price,
            updated_at=now,
        )

        return JoinResult(
            participant_id=user_id,
            payment_intent_id=payment_intent_id,
            order_id=order_id,
            amount_paid=new_price,
            participant_count=new_count,
        )
