"""CoinGecko listing adapters.

``CoinGeckoMarketsAdapter`` fetches one page of ``/coins/markets`` ordered by
24h volume. ``CoinGeckoTrendingAdapter`` is two-staged: it resolves the
trending ids from ``/search/trending`` and then requests their market rows,
which are tagged as trending. Both belong to the ``coingecko`` family.
"""
from __future__ import annotations

import logging
from typing import Any, List

import httpx

from ..errors import ParseError, SourceError
from .base import COINGECKO_MARKET, AdapterResult, get_json

logger = logging.getLogger(__name__)

FAMILY = "coingecko"
# CoinGecko /coins/markets caps ids and per_page at 250
MAX_IDS = 250


def _expect_list(data: Any, source: str, what: str) -> List[dict]:
    if not isinstance(data, list):
        raise ParseError(source, f"expected a list of {what}, got {type(data).__name__}")
    return [item for item in data if isinstance(item, dict)]


class CoinGeckoMarketsAdapter:
    family = FAMILY
    multi_instrument = False

    def __init__(self, base_url: str, page: int = 1, per_page: int = 250, vs_currency: str = "usd"):
        self.base_url = base_url.rstrip("/")
        self.page = page
        self.per_page = per_page
        self.vs_currency = vs_currency
        self.name = f"coingecko_markets[{page}]"

    async def fetch_batch(self, client: httpx.AsyncClient) -> AdapterResult:
        params = {
            "vs_currency": self.vs_currency,
            "order": "volume_desc",
            "per_page": self.per_page,
            "page": self.page,
            "sparkline": "false",
            "price_change_percentage": "1h,24h",
        }
        try:
            data = await get_json(client, f"{self.base_url}/coins/markets", source=self.name, params=params)
            rows = _expect_list(data, self.name, "market rows")
        except SourceError as e:
            return AdapterResult.failed(self.name, COINGECKO_MARKET, e)
        logger.debug(f"[SOURCES] {self.name} returned {len(rows)} rows")
        return AdapterResult(source=self.name, kind=COINGECKO_MARKET, records=rows)


class CoinGeckoTrendingAdapter:
    family = FAMILY
    multi_instrument = False

    def __init__(self, base_url: str, vs_currency: str = "usd"):
        self.base_url = base_url.rstrip("/")
        self.vs_currency = vs_currency
        self.name = "coingecko_trending"

    async def _trending_ids(self, client: httpx.AsyncClient) -> List[str]:
        data = await get_json(client, f"{self.base_url}/search/trending", source=self.name)
        if not isinstance(data, dict):
            raise ParseError(self.name, "trending payload is not an object")
        coins = data.get("coins")
        if not isinstance(coins, list):
            return []
        ids: List[str] = []
        for c in coins:
            item = c.get("item") if isinstance(c, dict) else None
            cid = item.get("id") if isinstance(item, dict) else None
            if isinstance(cid, str) and cid and cid not in ids:
                ids.append(cid)
        return ids[:MAX_IDS]

    async def fetch_batch(self, client: httpx.AsyncClient) -> AdapterResult:
        try:
            ids = await self._trending_ids(client)
            if not ids:
                # stage 2 needs ids from stage 1
                return AdapterResult(source=self.name, kind=COINGECKO_MARKET)
            params = {
                "vs_currency": self.vs_currency,
                "ids": ",".join(ids),
                "sparkline": "false",
                "price_change_percentage": "1h,24h",
            }
            data = await get_json(client, f"{self.base_url}/coins/markets", source=self.name, params=params)
            rows = _expect_list(data, self.name, "trending market rows")
        except SourceError as e:
            return AdapterResult.failed(self.name, COINGECKO_MARKET, e)
        records = [dict(row, is_trending=True) for row in rows]
        logger.debug(f"[SOURCES] {self.name} resolved {len(ids)} ids into {len(records)} rows")
        return AdapterResult(source=self.name, kind=COINGECKO_MARKET, records=records)
