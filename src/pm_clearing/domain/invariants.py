"""Market invariant verification after each trade and each settlement."""

import logging
from collections.abc import Iterable
from decimal import Decimal

from src.pm_amm.domain.makers import MarketMakerProtocol
from src.pm_amm.domain.models import TradeQuote
from src.pm_common.numeric import ZERO, is_non_negative_finite, relative_error
from src.pm_ledger.domain.models import Payout, Trade

logger = logging.getLogger(__name__)


def verify_trade_invariants(
    quote: TradeQuote, maker: MarketMakerProtocol, tolerance: Decimal
) -> None:
    """Verify a quote before it is committed. Raises AssertionError if violated.

    constant product: invariant(reserve_in, reserve_out) is unchanged by the trade
    non-negative: every post-trade reserve is finite and >= 0
    """
    before = maker.invariant(quote.reserve_in_before, quote.reserve_out_before)
    after = maker.invariant(quote.reserve_in_after, quote.reserve_out_after)
    err = relative_error(after, before)
    assert err <= tolerance, (
        f"constant product violated: market={quote.market_id} "
        f"k_before={before} k_after={after} rel_err={err}"
    )

    for outcome_id, reserve in quote.reserves_after.items():
        assert is_non_negative_finite(reserve), (
            f"reserve of {outcome_id} invalid after trade: {reserve}"
        )

    logger.debug(
        "Invariants OK: market=%s, k=%s, rel_err=%s", quote.market_id, after, err
    )


def verify_settlement_conservation(
    trades: Iterable[Trade],
    winning_outcome_id: str,
    payouts: Iterable[Payout],
    tolerance: Decimal = Decimal("1e-20"),
) -> None:
    """Shares issued on the winner == cash paid out. Raises AssertionError if violated.

    Only holds when no holder of the winning outcome is net short, which the
    buy-only CPMM guarantees.
    """
    issued = sum(
        (t.shares_delta for t in trades if t.outcome_id == winning_outcome_id), ZERO
    )
    paid = sum((p.amount for p in payouts), ZERO)
    assert relative_error(paid, issued) <= tolerance, (
        f"settlement conservation violated: shares_issued={issued} != paid={paid}"
    )
