"""Map raw adapter records onto ``MarketSnapshot``.

Every function here is pure. A record missing a required value raises
``SchemaGapError`` internally and is dropped from the batch; the rest of the
batch is kept.
"""
from __future__ import annotations

import logging
import math
from typing import Any, Iterable, List, Optional

from .errors import SchemaGapError
from .models import MarketSnapshot
from .sources.base import COINGECKO_MARKET, VENUE_TICKER, AdapterResult
from .sources.venue import split_instrument_id

logger = logging.getLogger(__name__)


def to_float(value: Any) -> Optional[float]:
    """Return ``value`` as a finite float, or None (numeric strings accepted)."""
    if value is None or isinstance(value, bool):
        return None
    try:
        f = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(f) or math.isinf(f):
        return None
    return f


def _required(raw: dict, key: str, *, positive: bool = False) -> float:
    f = to_float(raw.get(key))
    if f is None or (positive and f <= 0):
        raise SchemaGapError(key, raw.get(key))
    return f


def _first(raw: dict, *keys: str) -> Optional[float]:
    """First finite value among ``keys`` (naming-convention precedence)."""
    for k in keys:
        f = to_float(raw.get(k))
        if f is not None:
            return f
    return None


def _non_negative(value: Optional[float]) -> float:
    return value if value is not None and value > 0 else 0.0


def _positive_or_none(value: Optional[float]) -> Optional[float]:
    return value if value is not None and value > 0 else None


def normalize_coingecko(raw: dict, source: str = "") -> MarketSnapshot:
    symbol = str(raw.get('symbol') or '').strip()
    if not symbol:
        raise SchemaGapError('symbol', raw.get('symbol'))
    price = _required(raw, 'current_price', positive=True)
    # prefer the in_currency variants over the generic ones
    ch1h = _first(raw, 'price_change_percentage_1h_in_currency', 'price_change_percentage_1h')
    ch24h = _first(raw, 'price_change_percentage_24h_in_currency', 'price_change_percentage_24h')
    if ch24h is None:
        raise SchemaGapError('price_change_percentage_24h', None)
    rank = to_float(raw.get('market_cap_rank'))
    return MarketSnapshot(
        asset_key=symbol.lower(),
        display_name=str(raw.get('name') or symbol.upper()),
        symbol_text=symbol.upper(),
        image_url=str(raw.get('image') or ''),
        price=price,
        source=source,
        volume_24h=_non_negative(to_float(raw.get('total_volume'))),
        market_cap=_non_negative(to_float(raw.get('market_cap'))),
        change_pct_1h=ch1h,
        change_pct_24h=ch24h,
        high_24h=_positive_or_none(to_float(raw.get('high_24h'))),
        low_24h=_positive_or_none(to_float(raw.get('low_24h'))),
        is_trending=bool(raw.get('is_trending', False)),
        provider_id=str(raw['id']) if raw.get('id') else None,
        market_cap_rank=int(rank) if rank is not None and rank > 0 else None,
    )


def normalize_venue_ticker(raw: dict, source: str = "") -> MarketSnapshot:
    inst_id = str(raw.get('instId') or '').strip()
    base = str(raw.get('baseCurrency') or '').strip().upper()
    if not base and inst_id:
        base, _ = split_instrument_id(inst_id)
    if not base:
        raise SchemaGapError('baseCurrency', raw.get('baseCurrency'))
    last = _required(raw, 'last', positive=True)
    open24h = _required(raw, 'open24h', positive=True)
    volume = to_float(raw.get('volCurrencyQuote24h'))
    if volume is None:
        base_vol = to_float(raw.get('volCurrency24h'))
        volume = base_vol * last if base_vol is not None else None
    return MarketSnapshot(
        asset_key=base.lower(),
        display_name=base,
        symbol_text=base,
        price=last,
        source=source,
        volume_24h=_non_negative(volume),
        change_pct_1h=None,
        change_pct_24h=(last / open24h - 1.0) * 100.0,
        high_24h=_positive_or_none(to_float(raw.get('high24h'))),
        low_24h=_positive_or_none(to_float(raw.get('low24h'))),
        instrument_id=inst_id or None,
    )


_NORMALIZERS = {
    COINGECKO_MARKET: normalize_coingecko,
    VENUE_TICKER: normalize_venue_ticker,
}


def normalize(raw: Any, source_kind: str, source: str = "") -> Optional[MarketSnapshot]:
    """Normalize one raw record; returns None when the record must be dropped."""
    fn = _NORMALIZERS.get(source_kind)
    if fn is None:
        raise ValueError(f"unknown source kind: {source_kind}")
    if not isinstance(raw, dict):
        logger.debug(f"[NORMALIZE] {source}: dropped non-object record {raw!r}")
        return None
    try:
        return fn(raw, source)
    except SchemaGapError as e:
        logger.debug(f"[NORMALIZE] {source}: dropped record: {e}")
        return None


def normalize_batch(result: AdapterResult, family: Optional[str] = None) -> List[MarketSnapshot]:
    """Normalize every record of an adapter batch, tagging snapshots with ``family``."""
    return normalize_records(result.records, result.kind, family or result.source)


def normalize_records(records: Iterable[Any], source_kind: str, family: str) -> List[MarketSnapshot]:
    out: List[MarketSnapshot] = []
    dropped = 0
    for raw in records:
        snap = normalize(raw, source_kind, family)
        if snap is None:
            dropped += 1
            continue
        out.append(snap)
    if dropped:
        logger.debug(f"[NORMALIZE] {family}: kept {len(out)}, dropped {dropped}")
    return out
