"""InMemoryRecordStore — process-local implementation of RecordStoreProtocol.

Inside `transaction()` writes are validated immediately and staged; on a clean
exit every staged write is re-validated and then applied in one synchronous
step, so no other task can observe a half-applied transaction. On an exception
the staged writes are dropped.

Reads return copies; callers never hold references into store state.
"""

import copy
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from src.pm_amm.domain.models import ReserveState
from src.pm_common.datetime_utils import utc_now
from src.pm_common.enums import MarketStatus
from src.pm_common.errors import (
    AlreadyFinalError,
    ConcurrentModificationError,
    DuplicateSettlementError,
    InvalidMarketDefinitionError,
    MarketNotFoundError,
    MarketNotOpenError,
    OutcomeNotFoundError,
)
from src.pm_ledger.domain.models import Payout, Trade
from src.pm_market.domain.models import Market


@dataclass
class _Write:
    check: Callable[[], None]
    apply: Callable[[], None]


@dataclass
class _Staging:
    writes: list[_Write] = field(default_factory=list)
    payout_keys: set[tuple[str, str]] = field(default_factory=set)


class InMemoryRecordStore:
    def __init__(self, starting_balance: Decimal = Decimal("100")) -> None:
        self._starting_balance = starting_balance
        self._markets: dict[str, Market] = {}
        self._trades: list[Trade] = []
        self._payouts: dict[tuple[str, str], Payout] = {}
        self._balances: dict[str, Decimal] = {}
        self._staging: ContextVar[_Staging | None] = ContextVar(
            f"memory_store_staging_{id(self)}", default=None
        )

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        if self._staging.get() is not None:
            # Nested: join the outer transaction
            yield
            return
        staging = _Staging()
        token = self._staging.set(staging)
        try:
            yield
        finally:
            self._staging.reset(token)
        for w in staging.writes:
            w.check()
        for w in staging.writes:
            w.apply()

    def _write(self, check: Callable[[], None], apply: Callable[[], None]) -> None:
        check()
        staging = self._staging.get()
        if staging is None:
            apply()
        else:
            staging.writes.append(_Write(check=check, apply=apply))

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_market(self, market_id: str) -> Market | None:
        market = self._markets.get(market_id)
        return copy.deepcopy(market) if market is not None else None

    async def lock_market(self, market_id: str) -> Market | None:
        # Callers already hold the Ledger's per-market lock
        return await self.get_market(market_id)

    async def get_outcome_reserves(self, market_id: str) -> ReserveState:
        market = self._markets.get(market_id)
        if market is None:
            raise MarketNotFoundError(market_id)
        return market.reserve_state()

    async def get_market_status(self, market_id: str) -> MarketStatus | None:
        market = self._markets.get(market_id)
        return market.status if market is not None else None

    async def get_trades_for_market(self, market_id: str) -> list[Trade]:
        return [t for t in self._trades if t.market_id == market_id]

    async def get_trades_for_user(self, user_id: str) -> list[Trade]:
        return [t for t in self._trades if t.user_id == user_id]

    async def list_trades(self, since: datetime | None) -> list[Trade]:
        return [t for t in self._trades if since is None or t.created_at >= since]

    async def get_payouts_for_market(self, market_id: str) -> list[Payout]:
        return [p for p in self._payouts.values() if p.market_id == market_id]

    async def list_payouts(self, since: datetime | None) -> list[Payout]:
        return [
            p for p in self._payouts.values() if since is None or p.created_at >= since
        ]

    async def get_user_balances(self, user_ids: list[str]) -> dict[str, Decimal]:
        return {uid: self._balances[uid] for uid in user_ids if uid in self._balances}

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def create_market(self, market: Market) -> None:
        snapshot = copy.deepcopy(market)

        def check() -> None:
            if snapshot.id in self._markets:
                raise InvalidMarketDefinitionError(f"market {snapshot.id} already exists")

        def apply() -> None:
            self._markets[snapshot.id] = snapshot

        self._write(check, apply)

    async def commit_trade(
        self,
        market_id: str,
        trade: Trade,
        new_reserves: dict[str, Decimal],
        expected_version: int,
    ) -> None:
        reserves = dict(new_reserves)

        def check() -> None:
            market = self._markets.get(market_id)
            if market is None:
                raise MarketNotFoundError(market_id)
            if market.status != MarketStatus.OPEN:
                raise MarketNotOpenError(market_id, market.status.value)
            if market.version != expected_version:
                raise ConcurrentModificationError(market_id)
            for outcome_id in reserves:
                if market.outcome(outcome_id) is None:
                    raise OutcomeNotFoundError(market_id, outcome_id)

        def apply() -> None:
            market = self._markets[market_id]
            for outcome in market.outcomes:
                if outcome.id in reserves:
                    outcome.reserve = reserves[outcome.id]
            market.version += 1
            self._trades.append(trade)
            self._adjust_balance(trade.user_id, -trade.amount_in)

        self._write(check, apply)

    async def commit_resolution(
        self, market_id: str, status: MarketStatus, winning_outcome_id: str | None
    ) -> None:
        resolved_at = utc_now()

        def check() -> None:
            market = self._markets.get(market_id)
            if market is None:
                raise MarketNotFoundError(market_id)
            if market.status != MarketStatus.OPEN:
                raise AlreadyFinalError(market_id, market.status.value)

        def apply() -> None:
            market = self._markets[market_id]
            market.status = status
            market.winning_outcome_id = winning_outcome_id
            market.resolved_at = resolved_at

        self._write(check, apply)

    async def commit_payout(self, payout: Payout) -> None:
        key = (payout.user_id, payout.market_id)
        staging = self._staging.get()

        def check() -> None:
            if key in self._payouts:
                raise DuplicateSettlementError(payout.market_id, payout.user_id)

        def apply() -> None:
            self._payouts[key] = payout
            self._adjust_balance(payout.user_id, payout.amount)

        if staging is not None:
            if key in staging.payout_keys:
                raise DuplicateSettlementError(payout.market_id, payout.user_id)
            self._write(check, apply)
            staging.payout_keys.add(key)
        else:
            self._write(check, apply)

    async def mark_settled(self, market_id: str, settled_at: datetime) -> None:
        def check() -> None:
            market = self._markets.get(market_id)
            if market is None:
                raise MarketNotFoundError(market_id)
            if market.settled_at is not None:
                raise DuplicateSettlementError(market_id)

        def apply() -> None:
            self._markets[market_id].settled_at = settled_at

        self._write(check, apply)

    def _adjust_balance(self, user_id: str, delta: Decimal) -> None:
        current = self._balances.get(user_id, self._starting_balance)
        self._balances[user_id] = current + delta
