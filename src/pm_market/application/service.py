"""MarketLifecycle — OPEN -> RESOLVED | ANNULLED, both terminal.

Resolution and annulment run under the Ledger's per-market lock and inside one
store transaction together with settlement, so a final market without its
payouts is never visible and no trade can commit once resolution has begun.
"""

import logging
from collections.abc import Iterable, Sequence
from decimal import Decimal

from src.pm_amm.domain.makers import get_maker
from src.pm_clearing.domain.settlement import SettlementEngine, SettlementReport
from src.pm_common.datetime_utils import utc_now
from src.pm_common.enums import MakerKind, MarketStatus
from src.pm_common.errors import (
    AlreadyFinalError,
    InvalidMarketDefinitionError,
    MarketNotFoundError,
    OutcomeNotFoundError,
    UnauthorizedError,
)
from src.pm_common.id_generator import generate_id
from src.pm_common.numeric import is_positive_finite, to_decimal
from src.pm_ledger.domain.ledger import Ledger
from src.pm_ledger.domain.repository import RecordStoreProtocol
from src.pm_market.domain.models import Market, Outcome

logger = logging.getLogger(__name__)


class MarketLifecycle:
    def __init__(
        self,
        store: RecordStoreProtocol,
        ledger: Ledger,
        settlement: SettlementEngine,
        operator_ids: Iterable[str] = (),
        default_maker_kind: MakerKind | str = MakerKind.CPMM,
    ) -> None:
        self._store = store
        self._ledger = ledger
        self._settlement = settlement
        self._operator_ids = frozenset(operator_ids)
        self._default_maker_kind = default_maker_kind

    async def open_market(
        self,
        creator_id: str,
        outcome_names: Sequence[str],
        token_pool: Decimal | int | float | str,
        maker_kind: MakerKind | str | None = None,
    ) -> Market:
        """Create an OPEN market; every outcome's reserve starts at token_pool."""
        if len(outcome_names) < 2:
            raise InvalidMarketDefinitionError("a market needs at least two outcomes")
        if len(set(outcome_names)) != len(outcome_names):
            raise InvalidMarketDefinitionError("outcome names must be unique")
        try:
            pool = to_decimal(token_pool)
        except ValueError as e:
            raise InvalidMarketDefinitionError(str(e)) from e
        if not is_positive_finite(pool):
            raise InvalidMarketDefinitionError(f"token pool must be > 0, got {pool}")
        kind = get_maker(maker_kind or self._default_maker_kind).kind

        market_id = generate_id("mkt")
        market = Market(
            id=market_id,
            creator_id=creator_id,
            token_pool=pool,
            maker_kind=kind,
            status=MarketStatus.OPEN,
            outcomes=[
                Outcome(
                    id=generate_id("out"),
                    market_id=market_id,
                    name=name,
                    reserve=pool,
                    position=i,
                )
                for i, name in enumerate(outcome_names)
            ],
            created_at=utc_now(),
        )
        async with self._store.transaction():
            await self._store.create_market(market)
        logger.info(
            "Market %s opened by %s: outcomes=%d pool=%s maker=%s",
            market_id,
            creator_id,
            len(market.outcomes),
            pool,
            kind.value,
        )
        return market

    async def resolve(
        self, market_id: str, winning_outcome_id: str, actor_id: str
    ) -> SettlementReport:
        return await self._finalize(
            market_id, actor_id, MarketStatus.RESOLVED, winning_outcome_id
        )

    async def annul(self, market_id: str, actor_id: str) -> SettlementReport:
        return await self._finalize(market_id, actor_id, MarketStatus.ANNULLED, None)

    def can_finalize(self, market: Market, actor_id: str) -> bool:
        return actor_id == market.creator_id or actor_id in self._operator_ids

    async def _finalize(
        self,
        market_id: str,
        actor_id: str,
        status: MarketStatus,
        winning_outcome_id: str | None,
    ) -> SettlementReport:
        try:
            report = await self._finalize_locked(
                market_id, actor_id, status, winning_outcome_id
            )
        except (MarketNotFoundError, AlreadyFinalError):
            self._ledger.forget_market(market_id)
            raise
        self._ledger.forget_market(market_id)
        return report

    async def _finalize_locked(
        self,
        market_id: str,
        actor_id: str,
        status: MarketStatus,
        winning_outcome_id: str | None,
    ) -> SettlementReport:
        async with self._ledger.market_lock(market_id):
            async with self._store.transaction():
                market = await self._store.lock_market(market_id)
                if market is None:
                    raise MarketNotFoundError(market_id)
                if not self.can_finalize(market, actor_id):
                    raise UnauthorizedError(actor_id, market_id)
                if not market.is_open:
                    raise AlreadyFinalError(market_id, market.status.value)
                if winning_outcome_id is not None and market.outcome(winning_outcome_id) is None:
                    raise OutcomeNotFoundError(market_id, winning_outcome_id)

                await self._store.commit_resolution(market_id, status, winning_outcome_id)
                market.status = status
                market.winning_outcome_id = winning_outcome_id
                logger.info(
                    "Market %s -> %s by %s (winner=%s)",
                    market_id,
                    status.value,
                    actor_id,
                    winning_outcome_id,
                )
                return await self._settlement.settle_locked(market)
