"""PricingEngine — turn a trade request into shares and post-trade reserves.

Pure: reads a ReserveState, returns a TradeQuote. Committing the quote is the
Ledger's job.

Multi-outcome markets: the bought outcome is reserve_in, every other outcome is
summed into reserve_out. The decrease of reserve_out is taken from each other
outcome in proportion to its pre-trade share of reserve_out; the outcome with
the largest reserve absorbs the rounding remainder so the new reserves sum to
exactly reserve_out - shares_out.
"""

import logging
from decimal import Decimal

from src.pm_amm.domain.makers import MarketMakerProtocol, get_maker
from src.pm_amm.domain.models import ReserveState, TradeQuote
from src.pm_common.enums import MakerKind
from src.pm_common.errors import (
    InsufficientLiquidityError,
    InvalidTradeInputError,
    OutcomeNotFoundError,
)
from src.pm_common.numeric import ZERO, is_non_negative_finite, is_positive_finite

logger = logging.getLogger(__name__)


class PricingEngine:
    def __init__(self, maker: MarketMakerProtocol) -> None:
        self._maker = maker

    @classmethod
    def for_kind(cls, kind: MakerKind | str) -> "PricingEngine":
        return cls(get_maker(kind))

    @property
    def maker(self) -> MarketMakerProtocol:
        return self._maker

    def quote_trade(
        self, state: ReserveState, outcome_id: str, amount_in: Decimal
    ) -> TradeQuote:
        if outcome_id not in state.reserves:
            raise OutcomeNotFoundError(state.market_id, outcome_id)
        if len(state.reserves) < 2:
            raise InvalidTradeInputError("market needs at least two outcomes")
        if not is_positive_finite(amount_in):
            raise InvalidTradeInputError(f"amount_in must be > 0, got {amount_in}")
        for oid, reserve in state.reserves.items():
            if not is_non_negative_finite(reserve):
                raise InvalidTradeInputError(f"reserve of {oid} is invalid: {reserve}")

        reserve_in = state.reserves[outcome_id]
        others = {oid: r for oid, r in state.reserves.items() if oid != outcome_id}
        reserve_out = sum(others.values(), ZERO)
        if reserve_in <= ZERO:
            raise InvalidTradeInputError(f"reserve of {outcome_id} is empty")
        if reserve_out <= ZERO:
            raise InvalidTradeInputError("reserves of the other outcomes are empty")

        shares_out = self._maker.quote(reserve_in, reserve_out, amount_in)
        if shares_out <= ZERO or shares_out >= reserve_out:
            raise InsufficientLiquidityError(
                f"trade of {amount_in} on {outcome_id} yields {shares_out} shares"
            )

        new_others = redistribute(others, reserve_out, reserve_out - shares_out)
        reserves_after = {
            oid: (reserve_in + amount_in if oid == outcome_id else new_others[oid])
            for oid in state.reserves
        }
        logger.debug(
            "Quoted market=%s outcome=%s amount_in=%s shares_out=%s",
            state.market_id,
            outcome_id,
            amount_in,
            shares_out,
        )
        return TradeQuote(
            market_id=state.market_id,
            outcome_id=outcome_id,
            amount_in=amount_in,
            shares_out=shares_out,
            reserves_before=dict(state.reserves),
            reserves_after=reserves_after,
        )


def redistribute(
    others: dict[str, Decimal], reserve_out: Decimal, new_reserve_out: Decimal
) -> dict[str, Decimal]:
    """Scale each reserve by new_reserve_out / reserve_out, remainder to the largest."""
    absorber = max(others, key=lambda oid: others[oid])
    ratio = new_reserve_out / reserve_out
    result: dict[str, Decimal] = {}
    allocated = ZERO
    for oid, reserve in others.items():
        if oid == absorber:
            continue
        result[oid] = reserve * ratio
        allocated += result[oid]
    result[absorber] = new_reserve_out - allocated
    return result
