"""Domain models for pm_amm — pure dataclasses, no I/O."""

from dataclasses import dataclass, field
from decimal import Decimal

from src.pm_common.numeric import ZERO


@dataclass(frozen=True)
class ReserveState:
    """AMM reserves of one market, keyed by outcome id in display order.

    version is the store's optimistic concurrency token for the reserve row set.
    """

    market_id: str
    reserves: dict[str, Decimal]
    version: int = 0

    @property
    def total(self) -> Decimal:
        return sum(self.reserves.values(), ZERO)

    def implied_odds(self) -> dict[str, Decimal]:
        """reserve / total reserves per outcome (AMM marginal price, not an execution price)."""
        total = self.total
        if total <= ZERO:
            return {outcome_id: ZERO for outcome_id in self.reserves}
        return {outcome_id: r / total for outcome_id, r in self.reserves.items()}


@dataclass(frozen=True)
class TradeQuote:
    """Result of pricing one trade: what the user gets and what the reserves become."""

    market_id: str
    outcome_id: str
    amount_in: Decimal
    shares_out: Decimal
    reserves_before: dict[str, Decimal]
    reserves_after: dict[str, Decimal] = field(default_factory=dict)

    @property
    def reserve_in_before(self) -> Decimal:
        return self.reserves_before[self.outcome_id]

    @property
    def reserve_out_before(self) -> Decimal:
        return sum(
            (r for oid, r in self.reserves_before.items() if oid != self.outcome_id), ZERO
        )

    @property
    def reserve_in_after(self) -> Decimal:
        return self.reserves_after[self.outcome_id]

    @property
    def reserve_out_after(self) -> Decimal:
        return sum(
            (r for oid, r in self.reserves_after.items() if oid != self.outcome_id), ZERO
        )
