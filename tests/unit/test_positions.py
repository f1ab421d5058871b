"""Tests for pm_ledger positions — derived from the trade log."""

from datetime import UTC, datetime
from decimal import Decimal

from src.pm_common.enums import TradeType
from src.pm_ledger.domain.models import Trade
from src.pm_ledger.domain.positions import (
    PositionKey,
    derive_positions,
    net_shares_on_outcome,
)

NOW = datetime(2026, 3, 1, tzinfo=UTC)


def _trade(user_id: str, market_id: str, outcome_id: str, shares: str,
           trade_type: TradeType = TradeType.BUY) -> Trade:
    return Trade(
        id=f"trd-{user_id}-{outcome_id}-{shares}",
        user_id=user_id,
        market_id=market_id,
        outcome_id=outcome_id,
        amount_in=Decimal("1"),
        shares_out=Decimal(shares),
        trade_type=trade_type,
        created_at=NOW,
    )


class TestTrade:
    def test_shares_delta_sign(self) -> None:
        assert _trade("a", "m", "A", "3").shares_delta == Decimal("3")
        assert _trade("a", "m", "A", "3", TradeType.SELL).shares_delta == Decimal("-3")


class TestDerivePositions:
    def test_sums_per_user_market_outcome(self) -> None:
        trades = [
            _trade("alice", "m1", "A", "2"),
            _trade("alice", "m1", "A", "3.5"),
            _trade("alice", "m1", "B", "1"),
            _trade("alice", "m2", "A", "4"),
            _trade("bob", "m1", "A", "7"),
        ]
        positions = derive_positions(trades)

        assert positions == {
            PositionKey("alice", "m1", "A"): Decimal("5.5"),
            PositionKey("alice", "m1", "B"): Decimal("1"),
            PositionKey("alice", "m2", "A"): Decimal("4"),
            PositionKey("bob", "m1", "A"): Decimal("7"),
        }

    def test_keeps_zero_nets(self) -> None:
        trades = [_trade("a", "m", "A", "2"), _trade("a", "m", "A", "2", TradeType.SELL)]
        assert derive_positions(trades) == {PositionKey("a", "m", "A"): Decimal("0")}

    def test_empty(self) -> None:
        assert derive_positions([]) == {}


class TestNetSharesOnOutcome:
    def test_filters_outcome(self) -> None:
        trades = [
            _trade("alice", "m1", "A", "2"),
            _trade("bob", "m1", "B", "9"),
            _trade("alice", "m1", "A", "1", TradeType.SELL),
        ]
        assert net_shares_on_outcome(trades, "A") == {"alice": Decimal("1")}
        assert net_shares_on_outcome(trades, "C") == {}
