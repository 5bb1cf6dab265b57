from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

import httpx

from ..errors import ParseError, SourceError
from .base import VENUE_TICKER, AdapterResult, get_json

logger = logging.getLogger(__name__)

FAMILY = "venue"
QUOTES = ('USDT', 'USDC', 'USD', 'BTC', 'ETH')


def split_instrument_id(inst_id: str) -> Tuple[str, str]:
    """Return (base, quote) for an instrument id (BTC-USDT, BTC/USDT or BTCUSDT)."""
    s = (inst_id or '').strip().upper()
    for sep in ('-', '/'):
        if sep in s:
            parts = s.split(sep)
            return parts[0], (parts[1] if len(parts) > 1 else '')
    for q in QUOTES:
        if s.endswith(q) and len(s) > len(q):
            return s[:-len(q)], q
    return s, ''


def _unwrap(data: Any, source: str) -> List[dict]:
    """Unwrap the venue envelope ``{"code": "0", "data": [...]}``."""
    if not isinstance(data, dict):
        raise ParseError(source, "response is not an object")
    code = str(data.get('code', '0'))
    if code != '0':
        raise ParseError(source, f"venue error code {code}: {data.get('msg')}")
    rows = data.get('data')
    if not isinstance(rows, list):
        raise ParseError(source, "envelope has no data list")
    return [r for r in rows if isinstance(r, dict)]


class VenueAdapter:
    """Two-stage adapter for a derivative venue.

    Stage 1 lists instruments and keeps live perpetual-style ones; stage 2
    fetches 24h tickers and keeps those whose instrument survived stage 1,
    annotated with the instrument's base/quote currency.
    """

    family = FAMILY
    multi_instrument = True

    def __init__(self, base_url: str, inst_type: str = "SWAP", name: str = "venue"):
        self.base_url = base_url.rstrip("/")
        self.inst_type = inst_type.upper()
        self.name = name

    async def fetch_instruments(self, client: httpx.AsyncClient) -> Dict[str, dict]:
        data = await get_json(
            client, f"{self.base_url}/api/v1/market/instruments",
            source=self.name, params={"instType": self.inst_type},
        )
        selected: Dict[str, dict] = {}
        for inst in _unwrap(data, self.name):
            inst_id = inst.get('instId')
            if not inst_id:
                continue
            itype = str(inst.get('instType') or self.inst_type).upper()
            state = str(inst.get('state') or '').lower()
            if itype != self.inst_type or state != 'live':
                continue
            selected[inst_id] = inst
        return selected

    async def fetch_tickers(self, client: httpx.AsyncClient, inst_type: Optional[str] = None) -> List[dict]:
        data = await get_json(
            client, f"{self.base_url}/api/v1/market/tickers",
            source=self.name, params={"instType": inst_type or self.inst_type},
        )
        return _unwrap(data, self.name)

    async def fetch_batch(self, client: httpx.AsyncClient) -> AdapterResult:
        try:
            instruments = await self.fetch_instruments(client)
            if not instruments:
                return AdapterResult(source=self.name, kind=VENUE_TICKER)
            tickers = await self.fetch_tickers(client)
        except SourceError as e:
            return AdapterResult.failed(self.name, VENUE_TICKER, e)

        records: List[dict] = []
        for tk in tickers:
            inst = instruments.get(tk.get('instId'))
            if inst is None:
                continue
            base, quote = split_instrument_id(tk.get('instId') or '')
            records.append(dict(
                tk,
                baseCurrency=inst.get('baseCurrency') or base,
                quoteCurrency=inst.get('quoteCurrency') or quote,
            ))
        logger.debug(f"[SOURCES] {self.name}: {len(instruments)} live instruments, {len(records)} tickers")
        return AdapterResult(source=self.name, kind=VENUE_TICKER, records=records)
