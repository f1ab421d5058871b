"""Unit tests for Ledger.apply_trade — commit path and per-market serialization."""

import asyncio
from decimal import Decimal

import pytest

from src.main import TradingCore
from src.pm_amm.domain.models import ReserveState
from src.pm_amm.domain.pricing import PricingEngine
from src.pm_clearing.domain.settlement import SettlementReport
from src.pm_common.enums import MakerKind, TradeType
from src.pm_common.errors import (
    InvalidTradeInputError,
    MarketNotFoundError,
    MarketNotOpenError,
    OutcomeNotFoundError,
)
from src.pm_market.domain.models import Market


async def _reserves(core: TradingCore, market_id: str) -> dict[str, Decimal]:
    return (await core.store.get_outcome_reserves(market_id)).reserves


class TestApplyTrade:
    async def test_commits_trade_and_reserves(
        self, core: TradingCore, binary_market: Market, outcome_a: str, outcome_b: str
    ) -> None:
        trade = await core.ledger.apply_trade(binary_market.id, "alice", outcome_a, 10)

        assert trade.id.startswith("trd_")
        assert trade.amount_in == Decimal("10")
        assert trade.trade_type == TradeType.BUY
        assert abs(trade.shares_out - Decimal("9.0909090909")) < Decimal("1e-9")

        reserves = await _reserves(core, binary_market.id)
        assert reserves[outcome_a] == Decimal("110")
        assert reserves[outcome_b] == Decimal("100") - trade.shares_out

        assert await core.store.get_trades_for_market(binary_market.id) == [trade]
        assert await core.store.get_trades_for_user("alice") == [trade]

    async def test_debits_balance(
        self, core: TradingCore, binary_market: Market, outcome_a: str
    ) -> None:
        await core.ledger.apply_trade(binary_market.id, "alice", outcome_a, "10")
        balances = await core.store.get_user_balances(["alice"])
        assert balances == {"alice": Decimal("90")}

    async def test_bumps_version(
        self, core: TradingCore, binary_market: Market, outcome_a: str
    ) -> None:
        await core.ledger.apply_trade(binary_market.id, "alice", outcome_a, 10)
        await core.ledger.apply_trade(binary_market.id, "bob", outcome_a, 5)
        state = await core.store.get_outcome_reserves(binary_market.id)
        assert state.version == 2

    async def test_float_amount_accepted(
        self, core: TradingCore, binary_market: Market, outcome_a: str
    ) -> None:
        trade = await core.ledger.apply_trade(binary_market.id, "alice", outcome_a, 0.1)
        assert trade.amount_in == Decimal("0.1")


class TestRejections:
    async def _assert_untouched(self, core: TradingCore, market_id: str) -> None:
        state = await core.store.get_outcome_reserves(market_id)
        assert set(state.reserves.values()) == {Decimal("100")}
        assert state.version == 0
        assert await core.store.get_trades_for_market(market_id) == []

    @pytest.mark.parametrize("amount", ["abc", "0", 0, -5, "NaN", "Infinity", True])
    async def test_invalid_amount(
        self, core: TradingCore, binary_market: Market, outcome_a: str, amount: object
    ) -> None:
        with pytest.raises(InvalidTradeInputError):
            await core.ledger.apply_trade(binary_market.id, "alice", outcome_a, amount)
        await self._assert_untouched(core, binary_market.id)

    async def test_unknown_market(self, core: TradingCore) -> None:
        with pytest.raises(MarketNotFoundError):
            await core.ledger.apply_trade("mkt_missing", "alice", "out_x", 10)

    async def test_unknown_outcome(
        self, core: TradingCore, binary_market: Market
    ) -> None:
        with pytest.raises(OutcomeNotFoundError):
            await core.ledger.apply_trade(binary_market.id, "alice", "out_missing", 10)
        await self._assert_untouched(core, binary_market.id)

    async def test_sell_not_supported_by_cpmm(
        self, core: TradingCore, binary_market: Market, outcome_a: str
    ) -> None:
        with pytest.raises(InvalidTradeInputError, match="does not support sell"):
            await core.ledger.apply_trade(
                binary_market.id, "alice", outcome_a, 10, trade_type=TradeType.SELL
            )
        await self._assert_untouched(core, binary_market.id)

    async def test_resolved_market_rejects_trade(
        self, core: TradingCore, binary_market: Market, outcome_a: str
    ) -> None:
        await core.lifecycle.resolve(binary_market.id, outcome_a, "creator")
        with pytest.raises(MarketNotOpenError) as exc_info:
            await core.ledger.apply_trade(binary_market.id, "alice", outcome_a, 10)
        assert exc_info.value.code == 3002
        assert await core.store.get_trades_for_market(binary_market.id) == []

    async def test_annulled_market_rejects_trade(
        self, core: TradingCore, binary_market: Market, outcome_a: str
    ) -> None:
        await core.lifecycle.annul(binary_market.id, "creator")
        with pytest.raises(MarketNotOpenError):
            await core.ledger.apply_trade(binary_market.id, "alice", outcome_a, 10)


class TestConcurrency:
    async def test_concurrent_trades_serialize(
        self, core: TradingCore, binary_market: Market, outcome_a: str, outcome_b: str
    ) -> None:
        """Two trades on one market end in the state of some sequential order."""
        t1, t2 = await asyncio.gather(
            core.ledger.apply_trade(binary_market.id, "alice", outcome_a, 10),
            core.ledger.apply_trade(binary_market.id, "bob", outcome_a, 20),
        )

        engine = PricingEngine.for_kind(MakerKind.CPMM)
        start = ReserveState(
            market_id=binary_market.id,
            reserves={outcome_a: Decimal("100"), outcome_b: Decimal("100")},
        )

        def run(amounts: list[Decimal]) -> dict[str, Decimal]:
            state = start
            for amount in amounts:
                quote = engine.quote_trade(state, outcome_a, amount)
                state = ReserveState(market_id=state.market_id, reserves=quote.reserves_after)
            return state.reserves

        final = await _reserves(core, binary_market.id)
        assert final in (
            run([Decimal("10"), Decimal("20")]),
            run([Decimal("20"), Decimal("10")]),
        )
        trades = await core.store.get_trades_for_market(binary_market.id)
        assert {t.id for t in trades} == {t1.id, t2.id}

    async def test_many_concurrent_trades_keep_product(
        self, core: TradingCore, binary_market: Market, outcome_a: str, outcome_b: str
    ) -> None:
        await asyncio.gather(
            *[
                core.ledger.apply_trade(
                    binary_market.id, f"user{i}", outcome_a if i % 2 else outcome_b, i + 1
                )
                for i in range(20)
            ]
        )
        reserves = await _reserves(core, binary_market.id)
        product = reserves[outcome_a] * reserves[outcome_b]
        assert abs(product - Decimal("10000")) / Decimal("10000") < Decimal("1e-9")
        state = await core.store.get_outcome_reserves(binary_market.id)
        assert state.version == 20

    async def test_markets_do_not_block_each_other(
        self, core: TradingCore, binary_market: Market
    ) -> None:
        other = await core.lifecycle.open_market("creator", ["X", "Y"], 50)

        async with core.ledger.market_lock(binary_market.id):
            trade = await asyncio.wait_for(
                core.ledger.apply_trade(other.id, "alice", other.outcomes[0].id, 5),
                timeout=1,
            )
        assert trade.market_id == other.id

    async def test_same_market_waits_for_lock(
        self, core: TradingCore, binary_market: Market, outcome_a: str
    ) -> None:
        async with core.ledger.market_lock(binary_market.id):
            with pytest.raises(asyncio.TimeoutError):
                await asyncio.wait_for(
                    core.ledger.apply_trade(binary_market.id, "alice", outcome_a, 5),
                    timeout=0.05,
                )
        assert await core.store.get_trades_for_market(binary_market.id) == []

    async def test_trade_racing_resolution_is_rejected(
        self, core: TradingCore, binary_market: Market, outcome_a: str
    ) -> None:
        await core.ledger.apply_trade(binary_market.id, "alice", outcome_a, 10)

        report, late = await asyncio.gather(
            core.lifecycle.resolve(binary_market.id, outcome_a, "creator"),
            core.ledger.apply_trade(binary_market.id, "bob", outcome_a, 20),
            return_exceptions=True,
        )

        assert isinstance(report, SettlementReport)
        assert isinstance(late, MarketNotOpenError)
        trades = await core.store.get_trades_for_market(binary_market.id)
        assert [t.user_id for t in trades] == ["alice"]
        assert await core.store.get_payouts_for_market(binary_market.id) == report.payouts
        assert [p.user_id for p in report.payouts] == ["alice"]
        assert await core.store.get_user_balances(["bob"]) == {}


class TestMarketLocks:
    async def test_unknown_market_leaves_no_lock(self, core: TradingCore) -> None:
        with pytest.raises(MarketNotFoundError):
            await core.ledger.apply_trade("mkt_missing", "alice", "out_x", 10)
        assert "mkt_missing" not in core.ledger._market_locks

    async def test_open_market_keeps_lock(
        self, core: TradingCore, binary_market: Market, outcome_a: str
    ) -> None:
        await core.ledger.apply_trade(binary_market.id, "alice", outcome_a, 10)
        assert binary_market.id in core.ledger._market_locks

    async def test_final_market_lock_dropped(
        self, core: TradingCore, binary_market: Market, outcome_a: str
    ) -> None:
        await core.ledger.apply_trade(binary_market.id, "alice", outcome_a, 10)
        await core.lifecycle.resolve(binary_market.id, outcome_a, "creator")
        assert binary_market.id not in core.ledger._market_locks

        with pytest.raises(MarketNotOpenError):
            await core.ledger.apply_trade(binary_market.id, "bob", outcome_a, 10)
        assert binary_market.id not in core.ledger._market_locks

    async def test_held_lock_is_not_dropped(
        self, core: TradingCore, binary_market: Market
    ) -> None:
        lock = core.ledger.market_lock(binary_market.id)
        async with lock:
            core.ledger.forget_market(binary_market.id)
            assert core.ledger.market_lock(binary_market.id) is lock
