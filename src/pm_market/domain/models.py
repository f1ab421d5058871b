"""Domain models for pm_market — pure dataclasses, no business logic."""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from src.pm_amm.domain.models import ReserveState
from src.pm_common.enums import MakerKind, MarketStatus


@dataclass
class Outcome:
    id: str
    market_id: str
    name: str
    reserve: Decimal      # tokens held by the AMM for this outcome, >= 0
    position: int = 0     # display order within the market


@dataclass
class Market:
    id: str
    creator_id: str
    token_pool: Decimal   # pool seeded into every outcome at creation
    maker_kind: MakerKind
    status: MarketStatus
    outcomes: list[Outcome] = field(default_factory=list)
    winning_outcome_id: str | None = None
    version: int = 0      # bumped by every reserve commit
    created_at: datetime | None = None
    resolved_at: datetime | None = None
    settled_at: datetime | None = None

    @property
    def is_open(self) -> bool:
        return self.status == MarketStatus.OPEN

    def outcome(self, outcome_id: str) -> Outcome | None:
        for o in self.outcomes:
            if o.id == outcome_id:
                return o
        return None

    def reserve_state(self) -> ReserveState:
        ordered = sorted(self.outcomes, key=lambda o: o.position)
        return ReserveState(
            market_id=self.id,
            reserves={o.id: o.reserve for o in ordered},
            version=self.version,
        )
