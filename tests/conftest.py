"""Shared test fixtures."""

from decimal import Decimal

import pytest

from config.settings import Settings
from src.main import TradingCore, build_core
from src.pm_ledger.infrastructure.memory_store import InMemoryRecordStore
from src.pm_market.domain.models import Market


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        OPERATOR_IDS=["operator"],
        STARTING_BALANCE=Decimal("100"),
        LEADERBOARD_WINDOW_DAYS=0,
        LOG_LEVEL="DEBUG",
    )


@pytest.fixture
def store(test_settings: Settings) -> InMemoryRecordStore:
    return InMemoryRecordStore(starting_balance=test_settings.STARTING_BALANCE)


@pytest.fixture
def core(store: InMemoryRecordStore, test_settings: Settings) -> TradingCore:
    """Trading core over a process-local store."""
    return build_core(store, test_settings)


@pytest.fixture
async def binary_market(core: TradingCore) -> Market:
    """Fresh (100, 100) market with outcomes A and B, created by 'creator'."""
    return await core.lifecycle.open_market("creator", ["A", "B"], 100)


@pytest.fixture
def outcome_a(binary_market: Market) -> str:
    return binary_market.outcomes[0].id


@pytest.fixture
def outcome_b(binary_market: Market) -> str:
    return binary_market.outcomes[1].id
