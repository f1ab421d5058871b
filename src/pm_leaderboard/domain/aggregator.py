"""LeaderboardAggregator — fold trades, payouts and reserves into ranked PnL.

Pure and read-only: works on a LedgerSnapshot taken by the caller, so the
ledger can keep accepting trades while a leaderboard is computed.

Per user:
  total_invested    = sum(amount_in) over the user's trades
  total_returned    = sum(payout.amount) over the user's payouts
  unrealized_value  = sum(net_shares * reserve_o / sum(reserves)) over OPEN markets
  pnl_absolute      = total_returned + unrealized_value - total_invested
  starting_balance  = current_balance - (total_returned - total_invested)
  pnl_percent       = pnl_absolute / max(starting_balance, epsilon) * 100
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from decimal import Decimal

from src.pm_common.enums import MarketStatus, RankMetric
from src.pm_common.numeric import HUNDRED, ZERO
from src.pm_ledger.domain.models import Payout, Trade
from src.pm_ledger.domain.positions import derive_positions
from src.pm_market.domain.models import Market


@dataclass(frozen=True)
class LedgerSnapshot:
    trades: Sequence[Trade]
    payouts: Sequence[Payout]
    markets: dict[str, Market]
    balances: dict[str, Decimal]


@dataclass(frozen=True)
class UserPosition:
    """Open position in an unresolved market, marked at the AMM's implied odds."""

    user_id: str
    market_id: str
    outcome_id: str
    outcome_name: str
    shares: Decimal
    implied_odds: Decimal

    @property
    def current_value(self) -> Decimal:
        return self.shares * self.implied_odds


@dataclass
class UserStats:
    user_id: str
    current_balance: Decimal
    total_invested: Decimal = ZERO
    total_returned: Decimal = ZERO
    prediction_count: int = 0
    wins: int = 0
    losses: int = 0
    positions: list[UserPosition] = field(default_factory=list)

    @property
    def unrealized_value(self) -> Decimal:
        return sum((p.current_value for p in self.positions), ZERO)

    @property
    def pnl_absolute(self) -> Decimal:
        return self.total_returned + self.unrealized_value - self.total_invested

    @property
    def starting_balance(self) -> Decimal:
        return self.current_balance - (self.total_returned - self.total_invested)

    def pnl_percent(self, epsilon: Decimal) -> Decimal:
        denominator = max(self.starting_balance, epsilon)
        return self.pnl_absolute / denominator * HUNDRED

    @property
    def active_positions(self) -> int:
        return len(self.positions)


class LeaderboardAggregator:
    def __init__(self, default_balance: Decimal, epsilon: Decimal) -> None:
        if epsilon <= ZERO:
            raise ValueError(f"epsilon must be > 0, got {epsilon}")
        self._default_balance = default_balance
        self._epsilon = epsilon

    @property
    def epsilon(self) -> Decimal:
        return self._epsilon

    def aggregate(self, snapshot: LedgerSnapshot) -> dict[str, UserStats]:
        stats: dict[str, UserStats] = {}

        def get(user_id: str) -> UserStats:
            if user_id not in stats:
                stats[user_id] = UserStats(
                    user_id=user_id,
                    current_balance=snapshot.balances.get(user_id, self._default_balance),
                )
            return stats[user_id]

        for t in snapshot.trades:
            s = get(t.user_id)
            s.total_invested += t.amount_in
            s.prediction_count += 1
            market = snapshot.markets.get(t.market_id)
            if market is not None and market.status == MarketStatus.RESOLVED:
                if t.outcome_id == market.winning_outcome_id:
                    s.wins += 1
                else:
                    s.losses += 1

        for p in snapshot.payouts:
            get(p.user_id).total_returned += p.amount

        for position in _open_positions(snapshot.trades, snapshot.markets):
            get(position.user_id).positions.append(position)

        return stats

    def rank(
        self, stats: Iterable[UserStats], metric: RankMetric = RankMetric.PNL_ABSOLUTE
    ) -> list[UserStats]:
        """Descending by metric, ties broken by user id ascending."""
        if metric == RankMetric.PNL_PERCENT:
            return sorted(stats, key=lambda s: (-s.pnl_percent(self._epsilon), s.user_id))
        return sorted(stats, key=lambda s: (-s.pnl_absolute, s.user_id))


def _open_positions(
    trades: Iterable[Trade], markets: dict[str, Market]
) -> list[UserPosition]:
    positions: list[UserPosition] = []
    odds_cache: dict[str, dict[str, Decimal]] = {}
    for key, shares in derive_positions(trades).items():
        market = markets.get(key.market_id)
        if market is None or market.status != MarketStatus.OPEN or shares == ZERO:
            continue
        if key.market_id not in odds_cache:
            odds_cache[key.market_id] = market.reserve_state().implied_odds()
        outcome = market.outcome(key.outcome_id)
        positions.append(
            UserPosition(
                user_id=key.user_id,
                market_id=key.market_id,
                outcome_id=key.outcome_id,
                outcome_name=outcome.name if outcome is not None else key.outcome_id,
                shares=shares,
                implied_odds=odds_cache[key.market_id].get(key.outcome_id, ZERO),
            )
        )
    return positions
