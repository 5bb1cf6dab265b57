from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence

from .models import Category, MarketSnapshot, ScoredToken

logger = logging.getLogger(__name__)


class ScoringStrategy(str, Enum):
    """Weighting applied to the early-move momentum score.

    - momentum: volume share of the population
    - turnover: volume / market cap, as a share of the population's best ratio
    - amplitude: volume share times the predicted amplitude in percent of open
    """
    MOMENTUM = "momentum"
    TURNOVER = "turnover"
    AMPLITUDE = "amplitude"


@dataclass
class _Move:
    snap: MarketSnapshot
    category: Category
    short_change: float
    open_price: float
    amplitude: float
    completion: float


def estimate_open_price(price: float, change_pct_24h: Optional[float]) -> float:
    """Approximate the price 24h ago from the current price and the 24h change.

    A change of -100% (or below) would divide by zero; the current price is
    used instead.
    """
    if change_pct_24h is None or change_pct_24h <= -100.0:
        return price
    return price / (1.0 + change_pct_24h / 100.0)


def classify(change: float) -> Category:
    if change > 0:
        return Category.PUMPING
    if change < 0:
        return Category.DUMPING
    return Category.NEUTRAL


def short_horizon_change(snap: MarketSnapshot) -> Optional[float]:
    """1h change when available, else 24h change."""
    if snap.change_pct_1h is not None:
        return snap.change_pct_1h
    return snap.change_pct_24h


def clamp_pct(value: float) -> float:
    if math.isnan(value):
        return 0.0
    return max(0.0, min(100.0, value))


# ranges within this fraction of the reference price are flat
FLAT_RANGE_TOL = 1e-9


def _is_flat(amplitude: float, reference: float) -> bool:
    return amplitude <= abs(reference) * FLAT_RANGE_TOL


def highlight_count(n: int, fraction: float = 0.10) -> int:
    """Number of highlighted tokens: max(1, round(n * fraction)), half rounded up."""
    if n <= 0:
        return 0
    return max(1, int(math.floor(n * fraction + 0.5)))


def _primary_move(snap: MarketSnapshot) -> Optional[_Move]:
    if snap.price <= 0 or snap.change_pct_24h is None:
        return None
    short = short_horizon_change(snap)
    open_price = estimate_open_price(snap.price, snap.change_pct_24h)
    category = classify(short)
    if category is Category.PUMPING:
        if snap.high_24h is None:
            return None
        amplitude = snap.high_24h - open_price
    elif category is Category.DUMPING:
        if snap.low_24h is None:
            return None
        amplitude = open_price - snap.low_24h
    else:
        if snap.high_24h is None or snap.low_24h is None:
            return None
        amplitude = snap.high_24h - snap.low_24h
    # a flat or inverted range carries no signal
    if _is_flat(amplitude, open_price):
        return None
    if category is Category.NEUTRAL:
        completion = 0.0
    else:
        completion = clamp_pct(abs(snap.price - open_price) / amplitude * 100.0)
    return _Move(snap, category, short, open_price, amplitude, completion)


def _fallback_move(snap: MarketSnapshot) -> Optional[_Move]:
    if snap.price <= 0 or snap.high_24h is None or snap.low_24h is None:
        return None
    short = short_horizon_change(snap)
    if short is None:
        return None
    amplitude = snap.high_24h - snap.low_24h
    if _is_flat(amplitude, snap.price):
        return None
    category = classify(short)
    # 1h move in price units as the realized part of the 24h range
    reference = estimate_open_price(snap.price, short)
    completion = clamp_pct(abs(snap.price - reference) / amplitude * 100.0)
    open_price = estimate_open_price(snap.price, snap.change_pct_24h)
    return _Move(snap, category, short, open_price, amplitude, completion)


def _weights(moves: Sequence[_Move], strategy: ScoringStrategy) -> List[float]:
    if strategy is ScoringStrategy.TURNOVER:
        ratios = [m.snap.volume_24h / m.snap.market_cap if m.snap.market_cap > 0 else 0.0 for m in moves]
        top = max(ratios, default=0.0)
        return [r / top if top > 0 else 0.0 for r in ratios]
    top_volume = max((m.snap.volume_24h for m in moves), default=0.0)
    shares = [m.snap.volume_24h / top_volume if top_volume > 0 else 0.0 for m in moves]
    return shares


def _magnitude(move: _Move, strategy: ScoringStrategy) -> float:
    if strategy is ScoringStrategy.AMPLITUDE:
        return move.amplitude / move.open_price * 100.0 if move.open_price > 0 else 0.0
    return abs(move.short_change)


def _score(moves: List[_Move], strategy: ScoringStrategy) -> List[ScoredToken]:
    weights = _weights(moves, strategy)
    tokens: List[ScoredToken] = []
    for move, weight in zip(moves, weights):
        if move.category is Category.NEUTRAL:
            score = 0.0
        else:
            score = weight * _magnitude(move, strategy) * (1.0 - move.completion / 100.0)
        tokens.append(ScoredToken.from_snapshot(
            move.snap,
            category=move.category,
            completion_pct=move.completion,
            momentum_score=max(0.0, score),
            open_price=move.open_price,
            predicted_amplitude=move.amplitude,
        ))
    return tokens


def apply_highlights(tokens: Sequence[ScoredToken], fraction: float = 0.10) -> List[ScoredToken]:
    """Flag the top ``fraction`` of ``tokens`` by momentum score, keeping their order.

    Ties go to the earlier token.
    """
    k = highlight_count(len(tokens), fraction)
    by_score = sorted(range(len(tokens)), key=lambda i: tokens[i].momentum_score, reverse=True)
    top = set(by_score[:k])
    return [t.with_highlight(i in top) for i, t in enumerate(tokens)]


def score_population(
    snapshots: Sequence[MarketSnapshot],
    strategy: ScoringStrategy = ScoringStrategy.MOMENTUM,
) -> List[ScoredToken]:
    """Score merged snapshots; records lacking the inputs are dropped, not zeroed."""
    moves = [m for m in (_primary_move(s) for s in snapshots) if m is not None]
    dropped = len(snapshots) - len(moves)
    if dropped:
        logger.debug(f"[SCORE] dropped {dropped} of {len(snapshots)} records without a usable range")
    return _score(moves, strategy)


def score_fallback(snapshots: Sequence[MarketSnapshot]) -> List[ScoredToken]:
    """Simplified scoring: 24h high-low range as amplitude, 1h move as completion proxy."""
    moves = [m for m in (_fallback_move(s) for s in snapshots) if m is not None]
    dropped = len(snapshots) - len(moves)
    if dropped:
        logger.debug(f"[SCORE] fallback dropped {dropped} of {len(snapshots)} records")
    return _score(moves, ScoringStrategy.MOMENTUM)
