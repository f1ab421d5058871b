"""Ledger — serializes trades against one market's reserves.

One asyncio.Lock per market keeps at most one apply_trade in flight per market
inside this process; the store's version check rejects a stale commit made by
another process. Markets never wait on each other.
"""

import asyncio
import logging
from collections import defaultdict
from decimal import Decimal

from src.pm_amm.domain.pricing import PricingEngine
from src.pm_clearing.domain.invariants import verify_trade_invariants
from src.pm_common.datetime_utils import utc_now
from src.pm_common.enums import TradeType
from src.pm_common.errors import (
    InvalidTradeInputError,
    MarketNotFoundError,
    MarketNotOpenError,
)
from src.pm_common.id_generator import generate_id
from src.pm_common.numeric import to_decimal
from src.pm_ledger.domain.models import Trade
from src.pm_ledger.domain.repository import RecordStoreProtocol

logger = logging.getLogger(__name__)

DEFAULT_TOLERANCE = Decimal("1e-9")


class Ledger:
    def __init__(
        self, store: RecordStoreProtocol, tolerance: Decimal = DEFAULT_TOLERANCE
    ) -> None:
        self._store = store
        self._tolerance = tolerance
        self._market_locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    def market_lock(self, market_id: str) -> asyncio.Lock:
        """Per-market exclusion shared by trading and resolution."""
        return self._market_locks[market_id]

    def forget_market(self, market_id: str) -> None:
        """Drop the lock of a market that can no longer trade (unknown or final).

        A task still waiting on the dropped lock keeps its reference and then
        fails the OPEN check, so nothing can commit through it.
        """
        lock = self._market_locks.get(market_id)
        if lock is not None and not lock.locked():
            del self._market_locks[market_id]

    async def apply_trade(
        self,
        market_id: str,
        user_id: str,
        outcome_id: str,
        amount_in: Decimal | int | float | str,
        trade_type: TradeType = TradeType.BUY,
    ) -> Trade:
        """Price and commit one trade. Nothing is written if any step fails."""
        try:
            amount = to_decimal(amount_in)
        except ValueError as e:
            raise InvalidTradeInputError(str(e)) from e

        try:
            async with self.market_lock(market_id):
                async with self._store.transaction():
                    return await self._apply_trade_inner(
                        market_id, user_id, outcome_id, amount, trade_type
                    )
        except (MarketNotFoundError, MarketNotOpenError):
            self.forget_market(market_id)
            raise

    async def _apply_trade_inner(
        self,
        market_id: str,
        user_id: str,
        outcome_id: str,
        amount_in: Decimal,
        trade_type: TradeType,
    ) -> Trade:
        market = await self._store.lock_market(market_id)
        if market is None:
            raise MarketNotFoundError(market_id)
        if not market.is_open:
            raise MarketNotOpenError(market_id, market.status.value)

        engine = PricingEngine.for_kind(market.maker_kind)
        if trade_type == TradeType.SELL and not engine.maker.supports_sell:
            raise InvalidTradeInputError(
                f"{market.maker_kind.value} maker does not support sell trades"
            )

        state = await self._store.get_outcome_reserves(market_id)
        quote = engine.quote_trade(state, outcome_id, amount_in)
        verify_trade_invariants(quote, engine.maker, self._tolerance)

        trade = Trade(
            id=generate_id("trd"),
            user_id=user_id,
            market_id=market_id,
            outcome_id=outcome_id,
            amount_in=quote.amount_in,
            shares_out=quote.shares_out,
            trade_type=trade_type,
            created_at=utc_now(),
        )
        await self._store.commit_trade(
            market_id, trade, quote.reserves_after, expected_version=state.version
        )
        logger.info(
            "Trade %s committed: market=%s user=%s outcome=%s amount_in=%s shares_out=%s",
            trade.id,
            market_id,
            user_id,
            outcome_id,
            trade.amount_in,
            trade.shares_out,
        )
        return trade
