"""001: create markets, outcomes, trades, payouts, balances

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE markets (
            id                  VARCHAR(64)     PRIMARY KEY,
            creator_id          VARCHAR(64)     NOT NULL,
            token_pool          NUMERIC(38, 18) NOT NULL,
            maker_kind          VARCHAR(20)     NOT NULL DEFAULT 'CPMM',
            status              VARCHAR(20)     NOT NULL DEFAULT 'OPEN',
            winning_outcome_id  VARCHAR(64),
            version             INT             NOT NULL DEFAULT 0,
            created_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            resolved_at         TIMESTAMPTZ,
            settled_at          TIMESTAMPTZ,
            CONSTRAINT ck_markets_token_pool_gt_0 CHECK (token_pool > 0),
            CONSTRAINT ck_markets_status CHECK (status IN ('OPEN', 'RESOLVED', 'ANNULLED')),
            CONSTRAINT ck_markets_maker_kind CHECK (maker_kind IN ('CPMM', 'MANISWAP')),
            CONSTRAINT ck_markets_winner CHECK (
                (status = 'RESOLVED') = (winning_outcome_id IS NOT NULL)
            )
        );
    """)
    op.execute("CREATE INDEX idx_markets_status ON markets (status);")

    op.execute("""
        CREATE TABLE outcomes (
            id          VARCHAR(64)     PRIMARY KEY,
            market_id   VARCHAR(64)     NOT NULL REFERENCES markets (id),
            name        VARCHAR(200)    NOT NULL,
            reserve     NUMERIC(38, 18) NOT NULL,
            position    INT             NOT NULL,
            CONSTRAINT ck_outcomes_reserve_gte_0 CHECK (reserve >= 0),
            CONSTRAINT uq_outcomes_market_position UNIQUE (market_id, position)
        );
    """)

    op.execute("""
        CREATE TABLE trades (
            id          VARCHAR(64)     PRIMARY KEY,
            user_id     VARCHAR(64)     NOT NULL,
            market_id   VARCHAR(64)     NOT NULL REFERENCES markets (id),
            outcome_id  VARCHAR(64)     NOT NULL REFERENCES outcomes (id),
            amount_in   NUMERIC(38, 18) NOT NULL,
            shares_out  NUMERIC(38, 18) NOT NULL,
            trade_type  VARCHAR(10)     NOT NULL DEFAULT 'BUY',
            created_at  TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_trades_amount_in_gt_0 CHECK (amount_in > 0),
            CONSTRAINT ck_trades_type CHECK (trade_type IN ('BUY', 'SELL'))
        );
    """)
    op.execute("CREATE INDEX idx_trades_market ON trades (market_id, created_at);")
    op.execute("CREATE INDEX idx_trades_user ON trades (user_id, created_at);")
    # Append-only: the ledger never updates or deletes a trade
    op.execute("""
        CREATE FUNCTION fn_trades_append_only() RETURNS trigger AS $$
        BEGIN
            RAISE EXCEPTION 'trades is append-only';
        END;
        $$ LANGUAGE plpgsql;
    """)
    op.execute("""
        CREATE TRIGGER trg_trades_append_only
            BEFORE UPDATE OR DELETE ON trades
            FOR EACH ROW EXECUTE FUNCTION fn_trades_append_only();
    """)

    op.execute("""
        CREATE TABLE payouts (
            id          VARCHAR(64)     PRIMARY KEY,
            user_id     VARCHAR(64)     NOT NULL,
            market_id   VARCHAR(64)     NOT NULL REFERENCES markets (id),
            amount      NUMERIC(38, 18) NOT NULL,
            kind        VARCHAR(10)     NOT NULL,
            created_at  TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_payouts_user_market UNIQUE (user_id, market_id),
            CONSTRAINT ck_payouts_amount_gt_0 CHECK (amount > 0),
            CONSTRAINT ck_payouts_kind CHECK (kind IN ('WINNINGS', 'REFUND'))
        );
    """)
    op.execute("CREATE INDEX idx_payouts_created_at ON payouts (created_at);")

    op.execute("""
        CREATE TABLE balances (
            user_id     VARCHAR(64)     PRIMARY KEY,
            balance     NUMERIC(38, 18) NOT NULL
        );
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS balances;")
    op.execute("DROP TABLE IF EXISTS payouts;")
    op.execute("DROP TRIGGER IF EXISTS trg_trades_append_only ON trades;")
    op.execute("DROP TABLE IF EXISTS trades;")
    op.execute("DROP FUNCTION IF EXISTS fn_trades_append_only();")
    op.execute("DROP TABLE IF EXISTS outcomes;")
    op.execute("DROP TABLE IF EXISTS markets;")
