"""SQLAlchemy ORM models for the trading core tables.

persistence.py uses raw text() SQL; these models are the alembic metadata target.
Alembic migrations (001_create_trading_core.py) are the authoritative DDL source,
so column types and index names here mirror it exactly.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from src.pm_common.database import Base

AMOUNT = Numeric(38, 18)
ID = String(64)
TIMESTAMPTZ = DateTime(timezone=True)


class MarketORM(Base):
    __tablename__ = "markets"
    __table_args__ = (Index("idx_markets_status", "status"),)

    id: Mapped[str] = mapped_column(ID, primary_key=True)
    creator_id: Mapped[str] = mapped_column(ID, nullable=False)
    token_pool: Mapped[Decimal] = mapped_column(AMOUNT, nullable=False)
    maker_kind: Mapped[str] = mapped_column(String(20), nullable=False, server_default="CPMM")
    status: Mapped[str] = mapped_column(String(20), nullable=False, server_default="OPEN")
    winning_outcome_id: Mapped[str | None] = mapped_column(ID)
    version: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    created_at: Mapped[datetime] = mapped_column(TIMESTAMPTZ, nullable=False)
    resolved_at: Mapped[datetime | None] = mapped_column(TIMESTAMPTZ)
    settled_at: Mapped[datetime | None] = mapped_column(TIMESTAMPTZ)


class OutcomeORM(Base):
    __tablename__ = "outcomes"
    __table_args__ = (
        UniqueConstraint("market_id", "position", name="uq_outcomes_market_position"),
    )

    id: Mapped[str] = mapped_column(ID, primary_key=True)
    market_id: Mapped[str] = mapped_column(ID, ForeignKey("markets.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    reserve: Mapped[Decimal] = mapped_column(AMOUNT, nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)


class TradeORM(Base):
    __tablename__ = "trades"
    __table_args__ = (
        Index("idx_trades_market", "market_id", "created_at"),
        Index("idx_trades_user", "user_id", "created_at"),
    )

    id: Mapped[str] = mapped_column(ID, primary_key=True)
    user_id: Mapped[str] = mapped_column(ID, nullable=False)
    market_id: Mapped[str] = mapped_column(ID, ForeignKey("markets.id"), nullable=False)
    outcome_id: Mapped[str] = mapped_column(ID, ForeignKey("outcomes.id"), nullable=False)
    amount_in: Mapped[Decimal] = mapped_column(AMOUNT, nullable=False)
    shares_out: Mapped[Decimal] = mapped_column(AMOUNT, nullable=False)
    trade_type: Mapped[str] = mapped_column(String(10), nullable=False, server_default="BUY")
    created_at: Mapped[datetime] = mapped_column(TIMESTAMPTZ, nullable=False)


class PayoutORM(Base):
    __tablename__ = "payouts"
    __table_args__ = (
        UniqueConstraint("user_id", "market_id", name="uq_payouts_user_market"),
        Index("idx_payouts_created_at", "created_at"),
    )

    id: Mapped[str] = mapped_column(ID, primary_key=True)
    user_id: Mapped[str] = mapped_column(ID, nullable=False)
    market_id: Mapped[str] = mapped_column(ID, ForeignKey("markets.id"), nullable=False)
    amount: Mapped[Decimal] = mapped_column(AMOUNT, nullable=False)
    kind: Mapped[str] = mapped_column(String(10), nullable=False)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMPTZ, nullable=False)


class BalanceORM(Base):
    __tablename__ = "balances"

    user_id: Mapped[str] = mapped_column(ID, primary_key=True)
    balance: Mapped[Decimal] = mapped_column(AMOUNT, nullable=False)
