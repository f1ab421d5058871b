"""LeaderboardService — aggregate a store snapshot into a ranked board.

No locks and no transaction: the snapshot is best-effort and may miss trades
committed while it is being read.
"""

import logging
from collections.abc import Iterable
from datetime import datetime

from src.pm_common.datetime_utils import utc_now, window_start
from src.pm_common.enums import RankMetric
from src.pm_leaderboard.application.schemas import LeaderboardEntry, LeaderboardResponse
from src.pm_leaderboard.domain.aggregator import LeaderboardAggregator, LedgerSnapshot
from src.pm_ledger.domain.repository import RecordStoreProtocol
from src.pm_market.domain.models import Market

logger = logging.getLogger(__name__)


class LeaderboardService:
    def __init__(
        self,
        store: RecordStoreProtocol,
        aggregator: LeaderboardAggregator,
        window_days: int = 0,
    ) -> None:
        self._store = store
        self._aggregator = aggregator
        self._window_days = window_days

    async def snapshot(
        self, since: datetime | None, market_ids: Iterable[str] | None = None
    ) -> LedgerSnapshot:
        trades = await self._store.list_trades(since)
        payouts = await self._store.list_payouts(since)
        if market_ids is not None:
            wanted = set(market_ids)
            trades = [t for t in trades if t.market_id in wanted]
            payouts = [p for p in payouts if p.market_id in wanted]
        # A payout counts only against the in-window trades that earned it
        traded = {(t.user_id, t.market_id) for t in trades}
        payouts = [p for p in payouts if (p.user_id, p.market_id) in traded]

        markets: dict[str, Market] = {}
        for market_id in sorted({t.market_id for t in trades}):
            market = await self._store.get_market(market_id)
            if market is not None:
                markets[market_id] = market

        user_ids = sorted({t.user_id for t in trades} | {p.user_id for p in payouts})
        balances = await self._store.get_user_balances(user_ids)
        return LedgerSnapshot(
            trades=trades, payouts=payouts, markets=markets, balances=balances
        )

    async def get_leaderboard(
        self,
        metric: RankMetric = RankMetric.PNL_ABSOLUTE,
        window_days: int | None = None,
        market_ids: Iterable[str] | None = None,
        limit: int | None = None,
    ) -> LeaderboardResponse:
        days = self._window_days if window_days is None else window_days
        since = window_start(days)
        snap = await self.snapshot(since, market_ids)
        stats = self._aggregator.aggregate(snap)
        ranked = self._aggregator.rank(stats.values(), metric)
        if limit is not None:
            ranked = ranked[:limit]
        logger.debug(
            "Leaderboard built: metric=%s window_days=%d users=%d trades=%d",
            metric.value,
            days,
            len(stats),
            len(snap.trades),
        )
        return LeaderboardResponse(
            metric=metric,
            window_days=days,
            since=since,
            generated_at=utc_now(),
            items=[
                LeaderboardEntry.from_stats(i, s, self._aggregator.epsilon)
                for i, s in enumerate(ranked, start=1)
            ],
        )
