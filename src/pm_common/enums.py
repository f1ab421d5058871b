"""Global enums — must match DB CHECK constraints exactly (see alembic/versions)."""

from enum import Enum


class MarketStatus(str, Enum):
    OPEN = "OPEN"
    RESOLVED = "RESOLVED"
    ANNULLED = "ANNULLED"


class MakerKind(str, Enum):
    """Pricing function backing a market."""
    CPMM = "CPMM"
    # Weighted maker: declared for markets created with it, no implementation registered
    MANISWAP = "MANISWAP"


class TradeType(str, Enum):
    BUY = "BUY"
    SELL = "SELL"


class PayoutKind(str, Enum):
    WINNINGS = "WINNINGS"
    REFUND = "REFUND"


class RankMetric(str, Enum):
    PNL_ABSOLUTE = "PNL_ABSOLUTE"
    PNL_PERCENT = "PNL_PERCENT"
