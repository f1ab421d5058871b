"""Unit tests for pm_amm makers and the maker registry."""

from decimal import Decimal

import pytest

from src.pm_amm.domain import makers
from src.pm_amm.domain.makers import ConstantProductMaker, get_maker
from src.pm_common.enums import MakerKind
from src.pm_common.errors import UnsupportedMakerKindError


class _ConstantSumMaker:
    """1 share per unit in; holds reserve_in + reserve_out constant."""

    kind = MakerKind.MANISWAP
    supports_sell = False

    def quote(self, reserve_in: Decimal, reserve_out: Decimal, amount_in: Decimal) -> Decimal:
        return amount_in

    def invariant(self, reserve_in: Decimal, reserve_out: Decimal) -> Decimal:
        return reserve_in + reserve_out


class TestConstantProductMaker:
    def test_quote(self) -> None:
        shares = ConstantProductMaker().quote(Decimal(100), Decimal(100), Decimal(10))
        assert shares == Decimal(100) - Decimal(10000) / Decimal(110)

    def test_invariant_is_product(self) -> None:
        assert ConstantProductMaker().invariant(Decimal(4), Decimal(25)) == Decimal(100)

    def test_does_not_support_sell(self) -> None:
        assert ConstantProductMaker.supports_sell is False


class TestRegistry:
    def test_cpmm_registered(self) -> None:
        assert isinstance(get_maker(MakerKind.CPMM), ConstantProductMaker)

    def test_lookup_by_string(self) -> None:
        assert get_maker("CPMM").kind == MakerKind.CPMM

    def test_declared_but_unregistered_kind(self) -> None:
        with pytest.raises(UnsupportedMakerKindError) as exc_info:
            get_maker(MakerKind.MANISWAP)
        assert exc_info.value.code == 3006
        assert "MANISWAP" in exc_info.value.message

    def test_unknown_kind(self) -> None:
        with pytest.raises(UnsupportedMakerKindError):
            get_maker("LMSR")

    def test_registered_maker_prices_trades(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setitem(makers._REGISTRY, MakerKind.MANISWAP, _ConstantSumMaker())
        assert get_maker(MakerKind.MANISWAP).quote(
            Decimal(1), Decimal(1), Decimal("0.5")
        ) == Decimal("0.5")

    async def test_second_maker_plugs_into_ledger(
        self, monkeypatch: pytest.MonkeyPatch, core
    ) -> None:
        monkeypatch.setattr(makers, "_REGISTRY", dict(makers._REGISTRY))
        makers.register_maker(_ConstantSumMaker())
        market = await core.lifecycle.open_market(
            "creator", ["yes", "no"], 100, maker_kind=MakerKind.MANISWAP
        )
        yes = market.outcomes[0].id

        trade = await core.ledger.apply_trade(market.id, "alice", yes, 10)

        assert trade.shares_out == Decimal("10")
        state = await core.store.get_outcome_reserves(market.id)
        assert sum(state.reserves.values()) == Decimal("200")
