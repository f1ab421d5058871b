"""Domain models for pm_ledger — immutable ledger rows."""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from src.pm_common.enums import PayoutKind, TradeType


@dataclass(frozen=True)
class Trade:
    """One prediction. Written once, never updated or deleted."""

    id: str
    user_id: str
    market_id: str
    outcome_id: str
    amount_in: Decimal     # capital committed, > 0
    shares_out: Decimal    # credited to the user's position on outcome_id
    trade_type: TradeType
    created_at: datetime

    @property
    def shares_delta(self) -> Decimal:
        return -self.shares_out if self.trade_type == TradeType.SELL else self.shares_out


@dataclass(frozen=True)
class Payout:
    """Cash paid to one user when one market settles. At most one per (user, market)."""

    id: str
    user_id: str
    market_id: str
    amount: Decimal
    kind: PayoutKind
    created_at: datetime
