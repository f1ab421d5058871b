"""Positions are derived from the trade log, never stored."""

from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal

from src.pm_common.numeric import ZERO
from src.pm_ledger.domain.models import Trade


@dataclass(frozen=True)
class PositionKey:
    user_id: str
    market_id: str
    outcome_id: str


def derive_positions(trades: Iterable[Trade]) -> dict[PositionKey, Decimal]:
    """Net shares per (user, market, outcome), including zero and negative nets."""
    positions: dict[PositionKey, Decimal] = defaultdict(lambda: ZERO)
    for t in trades:
        positions[PositionKey(t.user_id, t.market_id, t.outcome_id)] += t.shares_delta
    return dict(positions)


def net_shares_on_outcome(trades: Iterable[Trade], outcome_id: str) -> dict[str, Decimal]:
    """Net shares per user on a single outcome."""
    shares: dict[str, Decimal] = defaultdict(lambda: ZERO)
    for t in trades:
        if t.outcome_id == outcome_id:
            shares[t.user_id] += t.shares_delta
    return dict(shares)
