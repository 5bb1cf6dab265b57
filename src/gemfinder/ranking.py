from __future__ import annotations

import threading
from enum import Enum
from typing import List, Sequence, Tuple

from .models import ScoredToken


class RankKey(str, Enum):
    MOMENTUM = "momentum"
    COMPLETION = "completion"
    VOLUME = "volume"


_SORT_ATTR = {
    RankKey.MOMENTUM: "momentum_score",
    RankKey.COMPLETION: "completion_pct",
    RankKey.VOLUME: "volume_24h",
}

DEFAULT_TOP_N = 100


def rank(population: Sequence[ScoredToken], sort_key: RankKey = RankKey.MOMENTUM,
         top_n: int = DEFAULT_TOP_N) -> List[ScoredToken]:
    """Stable sort descending by ``sort_key`` and keep the first ``top_n``."""
    attr = _SORT_ATTR[RankKey(sort_key)]
    ordered = sorted(population, key=lambda t: getattr(t, attr), reverse=True)
    return ordered[:max(0, top_n)]


def filter_tokens(population: Sequence[ScoredToken], query: str) -> List[ScoredToken]:
    """Case-insensitive substring match on name or symbol, preserving order.

    An empty (or whitespace-only) query returns the population unchanged.
    """
    q = (query or "").strip().lower()
    if not q:
        return list(population)
    return [
        t for t in population
        if q in t.display_name.lower() or q in t.symbol_text.lower()
    ]


class RankingState:
    """Ranked population, live query and the filtered view derived from them.

    The population is replaced wholesale by ``publish``; readers only ever
    see a complete population. ``view`` is an immutable tuple.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._population: Tuple[ScoredToken, ...] = ()
        self._query = ""
        self._view: Tuple[ScoredToken, ...] = ()

    @property
    def population(self) -> Tuple[ScoredToken, ...]:
        return self._population

    @property
    def query(self) -> str:
        return self._query

    @property
    def view(self) -> Tuple[ScoredToken, ...]:
        return self._view

    def publish(self, ranked: Sequence[ScoredToken]) -> Tuple[ScoredToken, ...]:
        with self._lock:
            self._population = tuple(ranked)
            self._view = tuple(filter_tokens(self._population, self._query))
            return self._view

    def set_query(self, text: str) -> Tuple[ScoredToken, ...]:
        with self._lock:
            self._query = text or ""
            self._view = tuple(filter_tokens(self._population, self._query))
            return self._view
