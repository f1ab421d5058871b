"""Process entry point: build the trading core once and pass it around.

    core = build_core()                       # SqlRecordStore from settings.DATABASE_URL
    core = build_core(InMemoryRecordStore())  # process-local store
    trade = await core.ledger.apply_trade(market_id, user_id, outcome_id, 10)
"""

from dataclasses import dataclass

from config.settings import Settings, settings as default_settings
from src.pm_clearing.domain.settlement import SettlementEngine
from src.pm_common.database import build_engine, build_session_factory
from src.pm_common.logging_config import configure_logging
from src.pm_leaderboard.application.service import LeaderboardService
from src.pm_leaderboard.domain.aggregator import LeaderboardAggregator
from src.pm_ledger.domain.ledger import Ledger
from src.pm_ledger.domain.repository import RecordStoreProtocol
from src.pm_ledger.infrastructure.persistence import SqlRecordStore
from src.pm_market.application.service import MarketLifecycle


@dataclass(frozen=True)
class TradingCore:
    store: RecordStoreProtocol
    ledger: Ledger
    settlement: SettlementEngine
    lifecycle: MarketLifecycle
    leaderboard: LeaderboardService


def build_core(
    store: RecordStoreProtocol | None = None, settings: Settings | None = None
) -> TradingCore:
    cfg = settings or default_settings
    configure_logging(cfg.LOG_LEVEL)
    if store is None:
        engine = build_engine(cfg.DATABASE_URL, echo=cfg.DEBUG)
        store = SqlRecordStore(build_session_factory(engine), cfg.STARTING_BALANCE)

    ledger = Ledger(store, tolerance=cfg.INVARIANT_REL_TOLERANCE)
    settlement = SettlementEngine(store, ledger)
    lifecycle = MarketLifecycle(
        store,
        ledger,
        settlement,
        operator_ids=cfg.OPERATOR_IDS,
        default_maker_kind=cfg.DEFAULT_MAKER_KIND,
    )
    leaderboard = LeaderboardService(
        store,
        LeaderboardAggregator(
            default_balance=cfg.STARTING_BALANCE, epsilon=cfg.PNL_PERCENT_EPSILON
        ),
        window_days=cfg.LEADERBOARD_WINDOW_DAYS,
    )
    return TradingCore(
        store=store,
        ledger=ledger,
        settlement=settlement,
        lifecycle=lifecycle,
        leaderboard=leaderboard,
    )
