from __future__ import annotations

from typing import Any

import httpx

from ...observability.logging import get_logger
from ...settings import Settings
from .gateway import Order, OrderRequest, PaymentGateway, PaymentGatewayError

RAZORPAY_API_BASE = "https://api.razorpay.com/v1"

# Razorpay limits: receipt <= 40 chars, at most 15 notes of <= 256 chars each.
_MAX_RECEIPT_LEN = 40
_MAX_NOTES = 15
_MAX_NOTE_LEN = 256


def _required(value: str | None, name: str) -> str:
    if value and str(value).strip():
        return str(value).strip()
    raise RuntimeError(f"{name} is not configured")


def _notes_payload(notes: dict[str, str]) -> dict[str, str]:
    out: dict[str, str] = {}
    for k, v in list((notes or {}).items())[:_MAX_NOTES]:
        out[str(k)] = str(v)[:_MAX_NOTE_LEN]
    return out


def _error_description(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:200] or f"HTTP {resp.status_code}"
    err = body.get("error") if isinstance(body, dict) else None
    if isinstance(err, dict) and err.get("description"):
        return str(err["description"])
    return f"HTTP {resp.status_code}"


class RazorpayGateway(PaymentGateway):
    """Razorpay Orders API client.

    Orders are created with manual capture (`payment_capture=0`): the payment
    is authorized and held; capture or refund happens in the payment workflow.
    """

    def __init__(
        self,
        *,
        key_id: str,
        key_secret: str,
        api_base: str = RAZORPAY_API_BASE,
        timeout_s: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self._auth = (key_id, key_secret)
        self._api_base = api_base.rstrip("/")
        self._timeout = timeout_s
        self._transport = transport
        self._log = get_logger("razorpay")

    def create_order(self, request: OrderRequest) -> Order:
        body: dict[str, Any] = {
            "amount": int(request.amount_minor_units),
            "currency": request.currency,
            "receipt": str(request.receipt)[:_MAX_RECEIPT_LEN],
            "notes": _notes_payload(request.notes),
            "payment_capture": 0,
        }

        try:
            with httpx.Client(
                base_url=self._api_base,
                auth=self._auth,
                timeout=self._timeout,
                transport=self._transport,
            ) as client:
                resp = client.post("/orders", json=body)
        except httpx.TimeoutException as e:
            raise PaymentGatewayError("Payment gateway timed out") from e
        except httpx.HTTPError as e:
            raise PaymentGatewayError(f"Payment gateway unreachable: {e}") from e

        if resp.status_code >= 400:
            desc = _error_description(resp)
            self._log.warning(
                "razorpay_order_rejected",
                status_code=resp.status_code,
                description=desc,
                receipt=body["receipt"],
            )
            raise PaymentGatewayError(f"Payment gateway rejected the order: {desc}", status_code=resp.status_code)

        try:
            data = resp.json()
        except ValueError as e:
            raise PaymentGatewayError("Payment gateway returned a malformed response") from e

        order_id = str((data or {}).get("id") or "").strip()
        if not order_id:
            raise PaymentGatewayError("Payment gateway response is missing the order id")

        amount = int(data.get("amount") or 0)
        if amount != body["amount"]:
            # The committed payment intent must match the order actually used.
            raise PaymentGatewayError(
                f"Payment gateway created order {order_id} for {amount}, expected {body['amount']}"
            )

        return Order(
            order_id=order_id,
            amount_minor_units=amount,
            currency=str(data.get("currency") or request.currency),
            receipt=str(data.get("receipt") or body["receipt"]),
            status=data.get("status"),
        )


def build_payment_gateway(settings: Settings) -> PaymentGateway | None:
    """The configured gateway, or None while payments are disabled."""
    if not settings.payments_enabled:
        return None
    return RazorpayGateway(
        key_id=_required(settings.razorpay_key_id, "RAZORPAY_KEY_ID"),
        key_secret=_required(settings.razorpay_key_secret, "RAZORPAY_KEY_SECRET"),
        api_base=settings.razorpay_api_base or RAZORPAY_API_BASE,
        timeout_s=float(settings.razorpay_timeout_seconds),
    )
