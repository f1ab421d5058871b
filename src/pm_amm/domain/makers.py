"""Market maker implementations and the registry that selects one per market.

A maker only knows the two-reserve pricing formula. Validation, multi-outcome
redistribution and invariant checks live in PricingEngine so a new maker kind
plugs in without touching Ledger or SettlementEngine.
"""

from decimal import Decimal
from typing import Protocol

from src.pm_common.enums import MakerKind
from src.pm_common.errors import UnsupportedMakerKindError


class MarketMakerProtocol(Protocol):
    kind: MakerKind
    supports_sell: bool

    def quote(self, reserve_in: Decimal, reserve_out: Decimal, amount_in: Decimal) -> Decimal:
        """Shares paid out of reserve_out for amount_in added to reserve_in."""
        ...

    def invariant(self, reserve_in: Decimal, reserve_out: Decimal) -> Decimal:
        """Quantity the maker holds constant across a trade."""
        ...


class ConstantProductMaker:
    """x * y = k over the bought outcome's reserve and the sum of the others."""

    kind = MakerKind.CPMM
    supports_sell = False

    def quote(self, reserve_in: Decimal, reserve_out: Decimal, amount_in: Decimal) -> Decimal:
        k = self.invariant(reserve_in, reserve_out)
        return reserve_out - k / (reserve_in + amount_in)

    def invariant(self, reserve_in: Decimal, reserve_out: Decimal) -> Decimal:
        return reserve_in * reserve_out


_REGISTRY: dict[MakerKind, MarketMakerProtocol] = {
    MakerKind.CPMM: ConstantProductMaker(),
}


def register_maker(maker: MarketMakerProtocol) -> None:
    _REGISTRY[maker.kind] = maker


def get_maker(kind: MakerKind | str) -> MarketMakerProtocol:
    try:
        return _REGISTRY[MakerKind(kind)]
    except (KeyError, ValueError) as e:
        raise UnsupportedMakerKindError(str(getattr(kind, "value", kind))) from e
