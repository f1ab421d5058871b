"""SqlRecordStore — concrete implementation of RecordStoreProtocol.

All queries use raw text() SQL (no ORM).
asyncpg parameter pattern: bind parameters arrive untyped, so use CAST(:param AS TYPE)
for NULL checks (CAST(:p AS T) IS NULL) and for arithmetic on parameters.

Transaction ownership: `transaction()` opens one AsyncSession with `session.begin()`
and binds it to the current task; every call inside reuses it. Calls made outside
a transaction run in their own short session and commit on return.
Row locking: lock_market takes `SELECT ... FOR UPDATE` on the markets row, which
serializes trades and resolutions on one market across processes.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from contextvars import ContextVar
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.pm_amm.domain.models import ReserveState
from src.pm_common.datetime_utils import utc_now
from src.pm_common.enums import MakerKind, MarketStatus, PayoutKind, TradeType
from src.pm_common.errors import (
    AlreadyFinalError,
    ConcurrentModificationError,
    DuplicateSettlementError,
    MarketNotFoundError,
    MarketNotOpenError,
)
from src.pm_ledger.domain.models import Payout, Trade
from src.pm_market.domain.models import Market, Outcome

# ---------------------------------------------------------------------------
# SQL: reads
# ---------------------------------------------------------------------------

_MARKET_COLUMNS = """
    id, creator_id, token_pool, maker_kind, status, winning_outcome_id,
    version, created_at, resolved_at, settled_at
"""

_GET_MARKET_SQL = text(f"SELECT {_MARKET_COLUMNS} FROM markets WHERE id = :market_id")

_LOCK_MARKET_SQL = text(
    f"SELECT {_MARKET_COLUMNS} FROM markets WHERE id = :market_id FOR UPDATE"
)

_GET_OUTCOMES_SQL = text("""
    SELECT id, market_id, name, reserve, position
    FROM outcomes
    WHERE market_id = :market_id
    ORDER BY position ASC
""")

_GET_VERSION_SQL = text("SELECT version FROM markets WHERE id = :market_id")

_GET_STATUS_SQL = text("SELECT status FROM markets WHERE id = :market_id")

_TRADE_COLUMNS = """
    id, user_id, market_id, outcome_id, amount_in, shares_out, trade_type, created_at
"""

_TRADES_BY_MARKET_SQL = text(f"""
    SELECT {_TRADE_COLUMNS} FROM trades
    WHERE market_id = :market_id
    ORDER BY created_at ASC, id ASC
""")

_TRADES_BY_USER_SQL = text(f"""
    SELECT {_TRADE_COLUMNS} FROM trades
    WHERE user_id = :user_id
    ORDER BY created_at ASC, id ASC
""")

_LIST_TRADES_SQL = text(f"""
    SELECT {_TRADE_COLUMNS} FROM trades
    WHERE CAST(:since AS TIMESTAMPTZ) IS NULL OR created_at >= CAST(:since AS TIMESTAMPTZ)
    ORDER BY created_at ASC, id ASC
""")

_PAYOUT_COLUMNS = "id, user_id, market_id, amount, kind, created_at"

_PAYOUTS_BY_MARKET_SQL = text(f"""
    SELECT {_PAYOUT_COLUMNS} FROM payouts
    WHERE market_id = :market_id
    ORDER BY user_id ASC
""")

_LIST_PAYOUTS_SQL = text(f"""
    SELECT {_PAYOUT_COLUMNS} FROM payouts
    WHERE CAST(:since AS TIMESTAMPTZ) IS NULL OR created_at >= CAST(:since AS TIMESTAMPTZ)
    ORDER BY created_at ASC, id ASC
""")

_BALANCES_SQL = text("""
    SELECT user_id, balance FROM balances WHERE user_id = ANY(:user_ids)
""")

# ---------------------------------------------------------------------------
# SQL: writes
# ---------------------------------------------------------------------------

_INSERT_MARKET_SQL = text("""
    INSERT INTO markets
        (id, creator_id, token_pool, maker_kind, status, version, created_at)
    VALUES
        (:id, :creator_id, :token_pool, :maker_kind, :status, :version, :created_at)
""")

_INSERT_OUTCOME_SQL = text("""
    INSERT INTO outcomes (id, market_id, name, reserve, position)
    VALUES (:id, :market_id, :name, :reserve, :position)
""")

_BUMP_VERSION_SQL = text("""
    UPDATE markets
    SET version = version + 1
    WHERE id = :market_id AND version = :expected_version AND status = 'OPEN'
    RETURNING version
""")

_UPDATE_RESERVE_SQL = text("""
    UPDATE outcomes SET reserve = :reserve
    WHERE id = :outcome_id AND market_id = :market_id
""")

_INSERT_TRADE_SQL = text("""
    INSERT INTO trades
        (id, user_id, market_id, outcome_id, amount_in, shares_out, trade_type, created_at)
    VALUES
        (:id, :user_id, :market_id, :outcome_id, :amount_in, :shares_out, :trade_type,
         :created_at)
""")

_RESOLVE_SQL = text("""
    UPDATE markets
    SET status = :status, winning_outcome_id = :winning_outcome_id, resolved_at = :resolved_at
    WHERE id = :market_id AND status = 'OPEN'
    RETURNING id
""")

_INSERT_PAYOUT_SQL = text("""
    INSERT INTO payouts (id, user_id, market_id, amount, kind, created_at)
    VALUES (:id, :user_id, :market_id, :amount, :kind, :created_at)
    ON CONFLICT (user_id, market_id) DO NOTHING
    RETURNING id
""")

_MARK_SETTLED_SQL = text("""
    UPDATE markets SET settled_at = :settled_at
    WHERE id = :market_id AND settled_at IS NULL
    RETURNING id
""")

_ADJUST_BALANCE_SQL = text("""
    INSERT INTO balances (user_id, balance)
    VALUES (:user_id, CAST(:starting_balance AS NUMERIC) + CAST(:delta AS NUMERIC))
    ON CONFLICT (user_id) DO UPDATE
        SET balance = balances.balance + CAST(:delta AS NUMERIC)
""")

# ---------------------------------------------------------------------------
# Row mappers
# ---------------------------------------------------------------------------


def _row_to_outcome(row: Any) -> Outcome:
    return Outcome(
        id=row.id,
        market_id=row.market_id,
        name=row.name,
        reserve=Decimal(row.reserve),
        position=row.position,
    )


def _row_to_market(row: Any, outcomes: list[Outcome]) -> Market:
    return Market(
        id=row.id,
        creator_id=row.creator_id,
        token_pool=Decimal(row.token_pool),
        maker_kind=MakerKind(row.maker_kind),
        status=MarketStatus(row.status),
        outcomes=outcomes,
        winning_outcome_id=row.winning_outcome_id,
        version=row.version,
        created_at=row.created_at,
        resolved_at=row.resolved_at,
        settled_at=row.settled_at,
    )


def _row_to_trade(row: Any) -> Trade:
    return Trade(
        id=row.id,
        user_id=row.user_id,
        market_id=row.market_id,
        outcome_id=row.outcome_id,
        amount_in=Decimal(row.amount_in),
        shares_out=Decimal(row.shares_out),
        trade_type=TradeType(row.trade_type),
        created_at=row.created_at,
    )


def _row_to_payout(row: Any) -> Payout:
    return Payout(
        id=row.id,
        user_id=row.user_id,
        market_id=row.market_id,
        amount=Decimal(row.amount),
        kind=PayoutKind(row.kind),
        created_at=row.created_at,
    )


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class SqlRecordStore:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        starting_balance: Decimal = Decimal("100"),
    ) -> None:
        self._session_factory = session_factory
        self._starting_balance = starting_balance
        self._current: ContextVar[AsyncSession | None] = ContextVar(
            f"sql_store_session_{id(self)}", default=None
        )

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        if self._current.get() is not None:
            yield
            return
        async with self._session_factory() as session:
            async with session.begin():
                token = self._current.set(session)
                try:
                    yield
                finally:
                    self._current.reset(token)

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        current = self._current.get()
        if current is not None:
            yield current
            return
        async with self._session_factory() as session:
            async with session.begin():
                yield session

    # --- reads ---

    async def get_market(self, market_id: str) -> Market | None:
        async with self._session() as db:
            return await self._load_market(db, _GET_MARKET_SQL, market_id)

    async def lock_market(self, market_id: str) -> Market | None:
        async with self._session() as db:
            return await self._load_market(db, _LOCK_MARKET_SQL, market_id)

    async def _load_market(self, db: AsyncSession, sql: Any, market_id: str) -> Market | None:
        row = (await db.execute(sql, {"market_id": market_id})).fetchone()
        if row is None:
            return None
        outcome_rows = (
            await db.execute(_GET_OUTCOMES_SQL, {"market_id": market_id})
        ).fetchall()
        return _row_to_market(row, [_row_to_outcome(r) for r in outcome_rows])

    async def get_outcome_reserves(self, market_id: str) -> ReserveState:
        async with self._session() as db:
            version = (
                await db.execute(_GET_VERSION_SQL, {"market_id": market_id})
            ).scalar_one_or_none()
            if version is None:
                raise MarketNotFoundError(market_id)
            rows = (await db.execute(_GET_OUTCOMES_SQL, {"market_id": market_id})).fetchall()
        return ReserveState(
            market_id=market_id,
            reserves={r.id: Decimal(r.reserve) for r in rows},
            version=version,
        )

    async def get_market_status(self, market_id: str) -> MarketStatus | None:
        async with self._session() as db:
            status = (
                await db.execute(_GET_STATUS_SQL, {"market_id": market_id})
            ).scalar_one_or_none()
        return MarketStatus(status) if status is not None else None

    async def get_trades_for_market(self, market_id: str) -> list[Trade]:
        async with self._session() as db:
            rows = (
                await db.execute(_TRADES_BY_MARKET_SQL, {"market_id": market_id})
            ).fetchall()
        return [_row_to_trade(r) for r in rows]

    async def get_trades_for_user(self, user_id: str) -> list[Trade]:
        async with self._session() as db:
            rows = (await db.execute(_TRADES_BY_USER_SQL, {"user_id": user_id})).fetchall()
        return [_row_to_trade(r) for r in rows]

    async def list_trades(self, since: datetime | None) -> list[Trade]:
        async with self._session() as db:
            rows = (await db.execute(_LIST_TRADES_SQL, {"since": since})).fetchall()
        return [_row_to_trade(r) for r in rows]

    async def get_payouts_for_market(self, market_id: str) -> list[Payout]:
        async with self._session() as db:
            rows = (
                await db.execute(_PAYOUTS_BY_MARKET_SQL, {"market_id": market_id})
            ).fetchall()
        return [_row_to_payout(r) for r in rows]

    async def list_payouts(self, since: datetime | None) -> list[Payout]:
        async with self._session() as db:
            rows = (await db.execute(_LIST_PAYOUTS_SQL, {"since": since})).fetchall()
        return [_row_to_payout(r) for r in rows]

    async def get_user_balances(self, user_ids: list[str]) -> dict[str, Decimal]:
        if not user_ids:
            return {}
        async with self._session() as db:
            rows = (await db.execute(_BALANCES_SQL, {"user_ids": user_ids})).fetchall()
        return {r.user_id: Decimal(r.balance) for r in rows}

    # --- writes ---

    async def create_market(self, market: Market) -> None:
        async with self._session() as db:
            await db.execute(
                _INSERT_MARKET_SQL,
                {
                    "id": market.id,
                    "creator_id": market.creator_id,
                    "token_pool": market.token_pool,
                    "maker_kind": market.maker_kind.value,
                    "status": market.status.value,
                    "version": market.version,
                    "created_at": market.created_at or utc_now(),
                },
            )
            for o in market.outcomes:
                await db.execute(
                    _INSERT_OUTCOME_SQL,
                    {
                        "id": o.id,
                        "market_id": market.id,
                        "name": o.name,
                        "reserve": o.reserve,
                        "position": o.position,
                    },
                )

    async def commit_trade(
        self,
        market_id: str,
        trade: Trade,
        new_reserves: dict[str, Decimal],
        expected_version: int,
    ) -> None:
        async with self._session() as db:
            bumped = (
                await db.execute(
                    _BUMP_VERSION_SQL,
                    {"market_id": market_id, "expected_version": expected_version},
                )
            ).fetchone()
            if bumped is None:
                status = (
                    await db.execute(_GET_STATUS_SQL, {"market_id": market_id})
                ).scalar_one_or_none()
                if status is None:
                    raise MarketNotFoundError(market_id)
                if status != MarketStatus.OPEN.value:
                    raise MarketNotOpenError(market_id, status)
                raise ConcurrentModificationError(market_id)

            for outcome_id, reserve in new_reserves.items():
                await db.execute(
                    _UPDATE_RESERVE_SQL,
                    {"market_id": market_id, "outcome_id": outcome_id, "reserve": reserve},
                )
            await db.execute(
                _INSERT_TRADE_SQL,
                {
                    "id": trade.id,
                    "user_id": trade.user_id,
                    "market_id": trade.market_id,
                    "outcome_id": trade.outcome_id,
                    "amount_in": trade.amount_in,
                    "shares_out": trade.shares_out,
                    "trade_type": trade.trade_type.value,
                    "created_at": trade.created_at,
                },
            )
            await self._adjust_balance(db, trade.user_id, -trade.amount_in)

    async def commit_resolution(
        self, market_id: str, status: MarketStatus, winning_outcome_id: str | None
    ) -> None:
        async with self._session() as db:
            row = (
                await db.execute(
                    _RESOLVE_SQL,
                    {
                        "market_id": market_id,
                        "status": status.value,
                        "winning_outcome_id": winning_outcome_id,
                        "resolved_at": utc_now(),
                    },
                )
            ).fetchone()
            if row is None:
                current = (
                    await db.execute(_GET_STATUS_SQL, {"market_id": market_id})
                ).scalar_one_or_none()
                if current is None:
                    raise MarketNotFoundError(market_id)
                raise AlreadyFinalError(market_id, current)

    async def commit_payout(self, payout: Payout) -> None:
        async with self._session() as db:
            row = (
                await db.execute(
                    _INSERT_PAYOUT_SQL,
                    {
                        "id": payout.id,
                        "user_id": payout.user_id,
                        "market_id": payout.market_id,
                        "amount": payout.amount,
                        "kind": payout.kind.value,
                        "created_at": payout.created_at,
                    },
                )
            ).fetchone()
            if row is None:
                raise DuplicateSettlementError(payout.market_id, payout.user_id)
            await self._adjust_balance(db, payout.user_id, payout.amount)

    async def mark_settled(self, market_id: str, settled_at: datetime) -> None:
        async with self._session() as db:
            row = (
                await db.execute(
                    _MARK_SETTLED_SQL, {"market_id": market_id, "settled_at": settled_at}
                )
            ).fetchone()
            if row is None:
                raise DuplicateSettlementError(market_id)

    async def _adjust_balance(self, db: AsyncSession, user_id: str, delta: Decimal) -> None:
        await db.execute(
            _ADJUST_BALANCE_SQL,
            {"user_id": user_id, "delta": delta, "starting_balance": self._starting_balance},
        )
