from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Ensure `backend/` is on sys.path so `import cleanup_api.*` works in tests.
BACKEND_DIR = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(BACKEND_DIR))

from cleanup_api.domain.cleanup.pricing import PricingEngine  # noqa: E402
from fakes import InMemoryCampaignStore, RecordingGateway  # noqa: E402


@pytest.fixture
def store() -> InMemoryCampaignStore:
    return InMemoryCampaignStore()


@pytest.fixture
def gateway() -> RecordingGateway:
    return RecordingGateway()


@pytest.fixture
def pricing() -> PricingEngine:
    return PricingEngine()
