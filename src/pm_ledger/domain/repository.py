"""Record store Protocol — dependency inversion for the trading core.

The store is constructed once per process and passed to Ledger, MarketLifecycle,
SettlementEngine and LeaderboardService. Tests inject InMemoryRecordStore;
SqlRecordStore is the SQLAlchemy implementation.

Transaction ownership: the CALLER opens `async with store.transaction()`; every
write inside becomes visible all at once or not at all.
"""

from contextlib import AbstractAsyncContextManager
from datetime import datetime
from decimal import Decimal
from typing import Protocol

from src.pm_amm.domain.models import ReserveState
from src.pm_common.enums import MarketStatus
from src.pm_ledger.domain.models import Payout, Trade
from src.pm_market.domain.models import Market


class RecordStoreProtocol(Protocol):
    def transaction(self) -> AbstractAsyncContextManager[None]: ...

    # --- reads ---

    async def get_market(self, market_id: str) -> Market | None: ...

    async def lock_market(self, market_id: str) -> Market | None:
        """get_market that also holds the market row until the transaction ends."""
        ...

    async def get_outcome_reserves(self, market_id: str) -> ReserveState: ...

    async def get_market_status(self, market_id: str) -> MarketStatus | None: ...

    async def get_trades_for_market(self, market_id: str) -> list[Trade]: ...

    async def get_trades_for_user(self, user_id: str) -> list[Trade]: ...

    async def list_trades(self, since: datetime | None) -> list[Trade]: ...

    async def get_payouts_for_market(self, market_id: str) -> list[Payout]: ...

    async def list_payouts(self, since: datetime | None) -> list[Payout]: ...

    async def get_user_balances(self, user_ids: list[str]) -> dict[str, Decimal]: ...

    # --- writes ---

    async def create_market(self, market: Market) -> None: ...

    async def commit_trade(
        self,
        market_id: str,
        trade: Trade,
        new_reserves: dict[str, Decimal],
        expected_version: int,
    ) -> None:
        """Append the trade and replace the reserves. Raises ConcurrentModificationError
        when the market's version is no longer expected_version, MarketNotOpenError
        when the market left OPEN."""
        ...

    async def commit_resolution(
        self, market_id: str, status: MarketStatus, winning_outcome_id: str | None
    ) -> None:
        """OPEN -> RESOLVED/ANNULLED. Raises AlreadyFinalError if not OPEN."""
        ...

    async def commit_payout(self, payout: Payout) -> None:
        """Raises DuplicateSettlementError if (user, market) already has a payout."""
        ...

    async def mark_settled(self, market_id: str, settled_at: datetime) -> None:
        """Raises DuplicateSettlementError if the market is already settled."""
        ...
