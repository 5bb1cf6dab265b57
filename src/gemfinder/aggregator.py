"""Merge normalized snapshots across instruments and providers.

Merge policy:

- inside a multi-instrument family (a venue listing BTC-USDT and BTC-USDC),
  volumes of distinct instruments sharing an asset key are summed;
- inside a listing family (CoinGecko), rows with the same provider id are one
  asset; a second provider id for an already-seen symbol is an ambiguous
  ticker and the first candidate in provider order is kept;
- across families, volumes are never summed: the richer record (image and
  name populated) wins and its gaps are filled from the other record, and
  ``is_trending`` is set if either side set it.

The first-candidate rule for ambiguous tickers is a best-effort heuristic,
not a guaranteed-correct identity resolution.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field, fields, replace
from typing import Dict, Iterable, List, Optional, Sequence

from .models import MarketSnapshot

logger = logging.getLogger(__name__)


@dataclass
class SourceBatch:
    family: str
    snapshots: List[MarketSnapshot] = field(default_factory=list)
    multi_instrument: bool = False


def normalize_symbol_key(s: str) -> str:
    """Normalize a symbol for comparison: uppercase, strip non-alphanum."""
    if not s:
        return ''
    return re.sub(r'[^A-Z0-9]', '', (s or '').strip().upper())


def is_denylisted(symbol: str, denylist: Iterable[str], *, exclude_usd_like: bool = True) -> bool:
    """Return True if the symbol is a stable/fiat-pegged asset to exclude.

    Besides the explicit denylist, anything containing 'USD' (FDUSD, XUSD)
    is treated as stable-like when ``exclude_usd_like`` is set.
    """
    b = normalize_symbol_key(symbol)
    if not b:
        return False
    if b in {normalize_symbol_key(d) for d in denylist}:
        return True
    if exclude_usd_like and 'USD' in b:
        return True
    return False


def _is_blank(value) -> bool:
    return value is None or value == ''


def _fill_gaps(winner: MarketSnapshot, other: MarketSnapshot) -> MarketSnapshot:
    updates = {}
    for f in fields(MarketSnapshot):
        mine = getattr(winner, f.name)
        theirs = getattr(other, f.name)
        if _is_blank(mine) and not _is_blank(theirs):
            updates[f.name] = theirs
        elif f.name in ('volume_24h', 'market_cap') and not mine and theirs:
            # 0 means unknown for these
            updates[f.name] = theirs
    updates['is_trending'] = winner.is_trending or other.is_trending
    return replace(winner, **updates)


def merge_records(existing: MarketSnapshot, incoming: MarketSnapshot) -> MarketSnapshot:
    """Merge two records of the same asset without summing volume.

    The richer record wins; on a tie the existing (earlier) record wins.
    """
    if incoming.richness > existing.richness:
        return _fill_gaps(incoming, existing)
    return _fill_gaps(existing, incoming)


def _merge_instruments(snapshots: Sequence[MarketSnapshot]) -> List[MarketSnapshot]:
    groups: Dict[str, List[MarketSnapshot]] = {}
    for snap in snapshots:
        group = groups.setdefault(snap.asset_key, [])
        if snap.instrument_id and any(s.instrument_id == snap.instrument_id for s in group):
            continue
        group.append(snap)
    out: List[MarketSnapshot] = []
    for key, group in groups.items():
        lead = max(group, key=lambda s: s.volume_24h)  # first max on ties
        total = sum(s.volume_24h for s in group)
        trending = any(s.is_trending for s in group)
        out.append(replace(lead, volume_24h=total, is_trending=trending))
    return out


def _merge_listing(snapshots: Sequence[MarketSnapshot]) -> List[MarketSnapshot]:
    by_key: Dict[str, MarketSnapshot] = {}
    for snap in snapshots:
        current = by_key.get(snap.asset_key)
        if current is None:
            by_key[snap.asset_key] = snap
            continue
        if current.provider_id and snap.provider_id and current.provider_id != snap.provider_id:
            logger.debug(
                f"[AGGREGATE] ambiguous ticker {snap.symbol_text}: keeping {current.provider_id}, "
                f"ignoring {snap.provider_id}"
            )
            continue
        by_key[snap.asset_key] = merge_records(current, snap)
    return list(by_key.values())


def merge_family(batch: SourceBatch) -> List[MarketSnapshot]:
    if batch.multi_instrument:
        return _merge_instruments(batch.snapshots)
    return _merge_listing(batch.snapshots)


def _group_families(batches: Iterable[SourceBatch]) -> List[SourceBatch]:
    """Concatenate batches of the same family, keeping provider order."""
    families: Dict[str, SourceBatch] = {}
    for b in batches:
        fam = families.get(b.family)
        if fam is None:
            families[b.family] = SourceBatch(b.family, list(b.snapshots), b.multi_instrument)
        else:
            fam.snapshots.extend(b.snapshots)
            fam.multi_instrument = fam.multi_instrument or b.multi_instrument
    return list(families.values())


def aggregate(
    batches: Iterable[SourceBatch],
    *,
    denylist: Iterable[str] = (),
    exclude_usd_like: bool = True,
    anchor: Optional[str] = None,
) -> List[MarketSnapshot]:
    """Merge all batches into one snapshot per asset key.

    When ``anchor`` names a family, only asset keys that family reported
    survive; other families only enrich them. Output keeps first-seen order.
    """
    deny = tuple(denylist)
    merged: Dict[str, MarketSnapshot] = {}
    anchor_keys: Optional[set] = None
    for fam in _group_families(batches):
        records = merge_family(fam)
        if anchor is not None and fam.family == anchor:
            anchor_keys = {r.asset_key for r in records}
        for rec in records:
            current = merged.get(rec.asset_key)
            merged[rec.asset_key] = rec if current is None else merge_records(current, rec)

    if anchor is not None:
        if anchor_keys is None:
            logger.info(f"[AGGREGATE] anchor family {anchor!r} reported nothing")
            return []
        merged = {k: v for k, v in merged.items() if k in anchor_keys}

    out = [
        snap for snap in merged.values()
        if not is_denylisted(snap.symbol_text, deny, exclude_usd_like=exclude_usd_like)
    ]
    excluded = len(merged) - len(out)
    if excluded:
        logger.debug(f"[AGGREGATE] excluded {excluded} stable/fiat-pegged assets")
    return out
