"""Pydantic schemas for leaderboard output."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from src.pm_common.enums import RankMetric
from src.pm_common.numeric import format_amount
from src.pm_leaderboard.domain.aggregator import UserPosition, UserStats


class UserPositionItem(BaseModel):
    market_id: str
    outcome_id: str
    outcome_name: str
    shares: Decimal
    implied_odds: Decimal
    current_value: Decimal
    current_value_display: str

    @classmethod
    def from_position(cls, position: UserPosition) -> "UserPositionItem":
        return cls(
            market_id=position.market_id,
            outcome_id=position.outcome_id,
            outcome_name=position.outcome_name,
            shares=position.shares,
            implied_odds=position.implied_odds,
            current_value=position.current_value,
            current_value_display=format_amount(position.current_value),
        )


class LeaderboardEntry(BaseModel):
    rank: int = Field(..., ge=1)
    user_id: str
    pnl_absolute: Decimal
    pnl_absolute_display: str
    pnl_percent: Decimal
    starting_balance: Decimal
    current_balance: Decimal
    total_invested: Decimal
    total_returned: Decimal
    unrealized_value: Decimal
    prediction_count: int
    active_positions: int
    wins: int
    losses: int
    positions: list[UserPositionItem] = Field(default_factory=list)

    @classmethod
    def from_stats(cls, rank: int, stats: UserStats, epsilon: Decimal) -> "LeaderboardEntry":
        return cls(
            rank=rank,
            user_id=stats.user_id,
            pnl_absolute=stats.pnl_absolute,
            pnl_absolute_display=format_amount(stats.pnl_absolute),
            pnl_percent=stats.pnl_percent(epsilon),
            starting_balance=stats.starting_balance,
            current_balance=stats.current_balance,
            total_invested=stats.total_invested,
            total_returned=stats.total_returned,
            unrealized_value=stats.unrealized_value,
            prediction_count=stats.prediction_count,
            active_positions=stats.active_positions,
            wins=stats.wins,
            losses=stats.losses,
            positions=[UserPositionItem.from_position(p) for p in stats.positions],
        )


class LeaderboardResponse(BaseModel):
    metric: RankMetric
    window_days: int
    since: datetime | None
    generated_at: datetime
    items: list[LeaderboardEntry]
