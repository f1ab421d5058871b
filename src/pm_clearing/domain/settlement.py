"""Market settlement — pay out winners (or refund on annulment) and mark the market settled."""

import logging
from collections import defaultdict
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from src.pm_clearing.domain.invariants import verify_settlement_conservation
from src.pm_common.datetime_utils import utc_now
from src.pm_common.enums import MarketStatus, PayoutKind
from src.pm_common.errors import (
    DuplicateSettlementError,
    MarketNotFinalError,
    MarketNotFoundError,
)
from src.pm_common.id_generator import generate_id
from src.pm_common.numeric import ZERO
from src.pm_ledger.domain.ledger import Ledger
from src.pm_ledger.domain.models import Payout, Trade
from src.pm_ledger.domain.positions import net_shares_on_outcome
from src.pm_ledger.domain.repository import RecordStoreProtocol
from src.pm_market.domain.models import Market

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SettlementReport:
    market_id: str
    status: MarketStatus
    winning_outcome_id: str | None
    payouts: list[Payout] = field(default_factory=list)
    settled_at: datetime | None = None

    @property
    def total_paid(self) -> Decimal:
        return sum((p.amount for p in self.payouts), ZERO)


def compute_payouts(
    market: Market, trades: Sequence[Trade], now: datetime
) -> list[Payout]:
    """Payout rows for a final market, one per user, sorted by user id.

    RESOLVED: each net share held on the winning outcome redeems for 1.
    ANNULLED: every trade's amount_in is refunded, summed per user.
    """
    amounts: dict[str, Decimal]
    if market.status == MarketStatus.RESOLVED:
        kind = PayoutKind.WINNINGS
        held = net_shares_on_outcome(trades, market.winning_outcome_id or "")
        amounts = {uid: shares for uid, shares in held.items() if shares > ZERO}
    elif market.status == MarketStatus.ANNULLED:
        kind = PayoutKind.REFUND
        amounts = defaultdict(lambda: ZERO)
        for t in trades:
            amounts[t.user_id] += t.amount_in
    else:
        raise MarketNotFinalError(market.id)

    return [
        Payout(
            id=generate_id("pay"),
            user_id=user_id,
            market_id=market.id,
            amount=amount,
            kind=kind,
            created_at=now,
        )
        for user_id, amount in sorted(amounts.items())
        if amount > ZERO
    ]


class SettlementEngine:
    def __init__(self, store: RecordStoreProtocol, ledger: Ledger) -> None:
        self._store = store
        self._ledger = ledger

    async def settle(self, market_id: str) -> SettlementReport:
        """Settle a market that is already RESOLVED or ANNULLED.

        Safe to re-run: a second call raises DuplicateSettlementError and writes nothing.
        """
        async with self._ledger.market_lock(market_id):
            async with self._store.transaction():
                market = await self._store.lock_market(market_id)
                if market is None:
                    raise MarketNotFoundError(market_id)
                return await self.settle_locked(market)

    async def settle_locked(self, market: Market) -> SettlementReport:
        """Settle inside a transaction the caller already holds for this market."""
        if market.settled_at is not None:
            logger.warning("Settlement re-run rejected: market=%s already settled", market.id)
            raise DuplicateSettlementError(market.id)

        trades = await self._store.get_trades_for_market(market.id)
        now = utc_now()
        payouts = compute_payouts(market, trades, now)
        if market.status == MarketStatus.RESOLVED:
            verify_settlement_conservation(trades, market.winning_outcome_id or "", payouts)

        try:
            for payout in payouts:
                await self._store.commit_payout(payout)
        except DuplicateSettlementError:
            logger.warning("Duplicate payout rejected while settling market=%s", market.id)
            raise
        await self._store.mark_settled(market.id, now)

        report = SettlementReport(
            market_id=market.id,
            status=market.status,
            winning_outcome_id=market.winning_outcome_id,
            payouts=payouts,
            settled_at=now,
        )
        logger.info(
            "Market %s settled: status=%s payouts=%d total=%s",
            market.id,
            market.status.value,
            len(payouts),
            report.total_paid,
        )
        return report
