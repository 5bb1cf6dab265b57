from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields, replace
from enum import Enum
from typing import Any, Dict, List, Optional

from .errors import EmptyPopulationError, GemFinderError


class Category(str, Enum):
    PUMPING = "pumping"
    DUMPING = "dumping"
    NEUTRAL = "neutral"


@dataclass(frozen=True)
class MarketSnapshot:
    """Normalized market record shared by every source family.

    ``asset_key`` is the merge key (lower-cased symbol). It is a heuristic:
    two providers may use the same symbol for different assets.
    """

    asset_key: str
    display_name: str
    symbol_text: str
    price: float
    source: str = ""
    image_url: str = ""
    volume_24h: float = 0.0
    market_cap: float = 0.0
    change_pct_1h: Optional[float] = None
    change_pct_24h: Optional[float] = None
    high_24h: Optional[float] = None
    low_24h: Optional[float] = None
    is_trending: bool = False
    # identity within the source family: CoinGecko id or venue instrument id
    provider_id: Optional[str] = None
    instrument_id: Optional[str] = None
    market_cap_rank: Optional[int] = None

    @property
    def richness(self) -> int:
        """How many presentation fields are populated (image, name)."""
        score = 0
        if self.image_url:
            score += 1
        if self.display_name and self.display_name.lower() != self.asset_key:
            score += 1
        return score

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["symbol_text"] = self.symbol_text.upper()
        return d


@dataclass(frozen=True)
class ScoredToken(MarketSnapshot):
    category: Category = Category.NEUTRAL
    completion_pct: float = 0.0
    momentum_score: float = 0.0
    highlighted: bool = False
    open_price: Optional[float] = None
    predicted_amplitude: Optional[float] = None

    @classmethod
    def from_snapshot(cls, snap: MarketSnapshot, **scored: Any) -> "ScoredToken":
        base = {f.name: getattr(snap, f.name) for f in fields(MarketSnapshot)}
        base.update(scored)
        return cls(**base)

    def with_highlight(self, highlighted: bool) -> "ScoredToken":
        return replace(self, highlighted=highlighted)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["category"] = self.category.value
        return d


class OutcomeKind(str, Enum):
    SUCCESS = "success"
    EMPTY_PRIMARY = "empty_primary"
    EMPTY_ALL = "empty_all"
    SOURCE_ERROR = "source_error"


@dataclass
class RunOutcome:
    """Result of one refresh cycle.

    - SUCCESS: the primary stage produced ``count`` tokens
    - EMPTY_PRIMARY: primary was empty, the fallback stage produced ``count``
    - EMPTY_ALL: both stages produced nothing
    - SOURCE_ERROR: both stages produced nothing and every adapter failed
    """

    kind: OutcomeKind
    count: int = 0
    stage: Optional[str] = None
    errors: List[GemFinderError] = field(default_factory=list)

    @property
    def has_data(self) -> bool:
        return self.kind in (OutcomeKind.SUCCESS, OutcomeKind.EMPTY_PRIMARY)

    def raise_for_empty(self) -> None:
        if not self.has_data:
            raise EmptyPopulationError(
                f"no tokens after primary and fallback stages ({self.kind.value}, {len(self.errors)} source errors)"
            )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "outcome": self.kind.value,
            "count": self.count,
            "stage": self.stage,
            "errors": [str(e) for e in self.errors],
        }
