from __future__ import annotations

import base64
import json

import httpx
import pytest

from cleanup_api.infrastructure.payments.gateway import OrderRequest, PaymentGatewayError
from cleanup_api.infrastructure.payments.razorpay_client import RazorpayGateway, build_payment_gateway
from cleanup_api.settings import get_settings


def _gateway(handler) -> RazorpayGateway:
    return RazorpayGateway(
        key_id="rzp_test_key",
        key_secret="secret",
        api_base="https://api.razorpay.test/v1",
        timeout_s=2.0,
        transport=httpx.MockTransport(handler),
    )


def _request(**overrides) -> OrderRequest:
    kwargs = dict(
        amount_minor_units=62000,
        currency="INR",
        receipt="pi_0123456789abcdef01",
        notes={"campaignId": "camp_1", "userId": "user_b", "type": "cleanup_join"},
    )
    kwargs.update(overrides)
    return OrderRequest(**kwargs)


def test_create_order_posts_manual_capture_hold():
    seen: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["method"] = request.method
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={
                "id": "order_Abc123",
                "amount": 62000,
                "currency": "INR",
                "receipt": "pi_0123456789abcdef01",
                "status": "created",
            },
        )

    order = _gateway(handler).create_order(_request())

    assert order.order_id == "order_Abc123"
    assert order.amount_minor_units == 62000
    assert order.status == "created"

    assert seen["method"] == "POST"
    assert seen["url"] == "https://api.razorpay.test/v1/orders"
    expected_auth = "Basic " + base64.b64encode(b"rzp_test_key:secret").decode()
    assert seen["auth"] == expected_auth
    assert seen["body"] == {
        "amount": 62000,
        "currency": "INR",
        "receipt": "pi_0123456789abcdef01",
        "notes": {"campaignId": "camp_1", "userId": "user_b", "type": "cleanup_join"},
        "payment_capture": 0,
    }


def test_receipt_and_notes_are_truncated_to_gateway_limits():
    seen: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "order_1", "amount": 100, "currency": "INR"})

    notes = {f"k{i}": "v" * 300 for i in range(20)}
    _gateway(handler).create_order(_request(amount_minor_units=100, receipt="r" * 60, notes=notes))

    assert len(seen["body"]["receipt"]) == 40
    assert len(seen["body"]["notes"]) == 15
    assert all(len(v) == 256 for v in seen["body"]["notes"].values())


def test_gateway_rejection_surfaces_description():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            400,
            json={"error": {"code": "BAD_REQUEST_ERROR", "description": "The amount must be atleast INR 1.00"}},
        )

    with pytest.raises(PaymentGatewayError) as exc:
        _gateway(handler).create_order(_request())

    assert exc.value.status_code == 400
    assert "The amount must be atleast INR 1.00" in str(exc.value)


def test_non_json_error_body():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="upstream unavailable")

    with pytest.raises(PaymentGatewayError) as exc:
        _gateway(handler).create_order(_request())
    assert exc.value.status_code == 503


def test_timeout_is_a_gateway_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(PaymentGatewayError, match="timed out"):
        _gateway(handler).create_order(_request())


def test_connection_error_is_a_gateway_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(PaymentGatewayError, match="unreachable"):
        _gateway(handler).create_order(_request())


def test_missing_order_id_is_rejected():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"amount": 62000})

    with pytest.raises(PaymentGatewayError, match="missing the order id"):
        _gateway(handler).create_order(_request())


def test_amount_mismatch_is_rejected():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"id": "order_1", "amount": 59100, "currency": "INR"})

    with pytest.raises(PaymentGatewayError, match="expected 62000"):
        _gateway(handler).create_order(_request())


def test_build_payment_gateway_disabled_returns_none():
    s = get_settings().model_copy(update={"payments_enabled": False})
    assert build_payment_gateway(s) is None


def test_build_payment_gateway_requires_credentials():
    s = get_settings().model_copy(
        update={"payments_enabled": True, "razorpay_key_id": None, "razorpay_key_secret": None}
    )
    with pytest.raises(RuntimeError, match="RAZORPAY_KEY_ID"):
        build_payment_gateway(s)


def test_build_payment_gateway_enabled():
    s = get_settings().model_copy(
        update={"payments_enabled": True, "razorpay_key_id": "rzp_live_x", "razorpay_key_secret": "s"}
    )
    assert isinstance(build_payment_gateway(s), RazorpayGateway)
