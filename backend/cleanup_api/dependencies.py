"""
FastAPI dependency wiring for the cleanup workflows.

Tests swap collaborators through `app.dependency_overrides`.
"""

from __future__ import annotations

from functools import lru_cache

from fastapi import Depends

from .db.dynamodb.table import get_main_table
from .domain.cleanup.pricing import PricingEngine
from .infrastructure.payments.gateway import PaymentGateway
from .infrastructure.payments.razorpay_client import build_payment_gateway
from .modules.cleanup import CreationCoordinator, JoinCoordinator
from .repositories.cleanup.campaign_store import CampaignStore
from .repositories.cleanup.dynamo_campaign_store import DynamoCampaignStore
from .settings import Settings, get_settings


def get_app_settings() -> Settings:
    return get_settings()


@lru_cache(maxsize=1)
def get_pricing_engine() -> PricingEngine:
    return PricingEngine.from_settings(get_settings())


@lru_cache(maxsize=1)
def get_campaign_store() -> CampaignStore:
    return DynamoCampaignStore(table=get_main_table())


@lru_cache(maxsize=1)
def get_payment_gateway() -> PaymentGateway | None:
    return build_payment_gateway(get_settings())


def get_join_coordinator(
    store: CampaignStore = Depends(get_campaign_store),
    gateway: PaymentGateway | None = Depends(get_payment_gateway),
    pricing: PricingEngine = Depends(get_pricing_engine),
    settings: Settings = Depends(get_app_settings),
) -> JoinCoordinator:
    return JoinCoordinator(
        store=store,
        gateway=gateway,
        pricing=pricing,
        payments_enabled=settings.payments_enabled,
        currency=settings.payment_currency,
        max_attempts=settings.cleanup_transaction_max_attempts,
    )


def get_creation_coordinator(
    store: CampaignStore = Depends(get_campaign_store),
    gateway: PaymentGateway | None = Depends(get_payment_gateway),
    pricing: PricingEngine = Depends(get_pricing_engine),
    settings: Settings = Depends(get_app_settings),
) -> CreationCoordinator:
    return CreationCoordinator(
        store=store,
        gateway=gateway,
        pricing=pricing,
        payments_enabled=settings.payments_enabled,
        currency=settings.payment_currency,
        max_attempts=settings.cleanup_transaction_max_attempts,
    )
