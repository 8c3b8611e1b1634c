from __future__ import annotations

from ...domain.cleanup.errors import PaymentOrderFailed
from ...infrastructure.payments.gateway import OrderRequest, PaymentGateway, PaymentGatewayError
from ...observability.logging import get_logger

PLACEHOLDER_ORDER_PREFIX = "placeholder_order_"


def placeholder_order_id(payment_intent_id: str) -> str:
    return f"{PLACEHOLDER_ORDER_PREFIX}{payment_intent_id}"


def request_order_id(
    *,
    gateway: PaymentGateway | None,
    payments_enabled: bool,
    payment_intent_id: str,
    amount_paise: int,
    currency: str,
    notes: dict[str, str],
) -> str:
    """
    Reserve a payment hold for one join/creation attempt and return its order id.

    With payments disabled the gateway is never called and a deterministic
    placeholder reference (derived from the payment intent id) is returned.
    The payment intent id doubles as the gateway receipt.
    """
    if not payments_enabled:
        return placeholder_order_id(payment_intent_id)

    if gateway is None:
        raise PaymentOrderFailed(message="Failed to create payment order: payment gateway is not configured")

    try:
        order = gateway.create_order(
            OrderRequest(
                amount_minor_units=int(amount_paise),
                currency=currency,
                receipt=payment_intent_id,
                notes=notes,
            )
        )
    except PaymentGatewayError as e:
        get_logger("cleanup").warning(
            "cleanup_payment_order_failed",
            payment_intent_id=payment_intent_id,
            amount_paise=int(amount_paise),
            order_type=notes.get("type"),
            error=str(e),
        )
        raise PaymentOrderFailed(message=f"Failed to create payment order: {e}", cause=e) from e

    return order.order_id
