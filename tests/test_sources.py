import asyncio
import os
import sys
import unittest

import httpx

# Ensure src/ on path
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from gemfinder.config import Settings
from gemfinder.errors import ParseError, TransportError
from gemfinder.sources import (
    CoinGeckoMarketsAdapter,
    CoinGeckoTrendingAdapter,
    VenueAdapter,
    build_sources,
    list_sources,
)
from gemfinder.sources.venue import split_instrument_id


class _DummyClient:
    """Async client stub answering GETs from a path -> response table."""

    def __init__(self, routes):
        self.routes = routes
        self.calls = []

    async def get(self, url, params=None):
        self.calls.append((url, params))
        for path, answer in self.routes.items():
            if url.endswith(path):
                if isinstance(answer, Exception):
                    raise answer
                return answer
        return httpx.Response(404, json={"error": "not found"})


def run(coro):
    return asyncio.run(coro)


CG_ROW = {"id": "solana", "symbol": "sol", "name": "Solana", "current_price": 140.0,
          "price_change_percentage_24h": 2.0, "high_24h": 150.0, "low_24h": 130.0}


class CoinGeckoAdapterTests(unittest.TestCase):
    def test_markets_page(self):
        client = _DummyClient({"/coins/markets": httpx.Response(200, json=[CG_ROW])})
        adapter = CoinGeckoMarketsAdapter("https://cg.test/api/v3/", page=2, per_page=50)
        result = run(adapter.fetch_batch(client))
        self.assertTrue(result.ok)
        self.assertEqual(result.records, [CG_ROW])
        url, params = client.calls[0]
        self.assertEqual(url, "https://cg.test/api/v3/coins/markets")
        self.assertEqual(params["page"], 2)
        self.assertEqual(params["per_page"], 50)
        self.assertEqual(params["order"], "volume_desc")
        self.assertEqual(adapter.name, "coingecko_markets[2]")

    def test_http_error_becomes_transport_error(self):
        client = _DummyClient({"/coins/markets": httpx.Response(500, text="boom")})
        result = run(CoinGeckoMarketsAdapter("https://cg.test").fetch_batch(client))
        self.assertFalse(result.ok)
        self.assertEqual(result.records, [])
        self.assertIsInstance(result.error, TransportError)
        self.assertEqual(result.error.status, 500)

    def test_connection_failure_becomes_transport_error(self):
        client = _DummyClient({"/coins/markets": httpx.ConnectError("refused")})
        result = run(CoinGeckoMarketsAdapter("https://cg.test").fetch_batch(client))
        self.assertIsInstance(result.error, TransportError)

    def test_invalid_url_becomes_transport_error(self):
        client = _DummyClient({"/coins/markets": httpx.InvalidURL("Invalid URL component 'host'")})
        result = run(CoinGeckoMarketsAdapter("https://cg.test").fetch_batch(client))
        self.assertFalse(result.ok)
        self.assertIsInstance(result.error, TransportError)

    def test_bad_json_becomes_parse_error(self):
        client = _DummyClient({"/coins/markets": httpx.Response(200, content=b"<html>not json</html>")})
        result = run(CoinGeckoMarketsAdapter("https://cg.test").fetch_batch(client))
        self.assertIsInstance(result.error, ParseError)

    def test_unexpected_shape_becomes_parse_error(self):
        client = _DummyClient({"/coins/markets": httpx.Response(200, json={"status": "rate limited"})})
        result = run(CoinGeckoMarketsAdapter("https://cg.test").fetch_batch(client))
        self.assertIsInstance(result.error, ParseError)

    def test_trending_resolves_ids_then_rows(self):
        client = _DummyClient({
            "/search/trending": httpx.Response(200, json={"coins": [
                {"item": {"id": "solana"}}, {"item": {"id": "pepe"}}, {"item": {"id": "solana"}},
            ]}),
            "/coins/markets": httpx.Response(200, json=[CG_ROW]),
        })
        result = run(CoinGeckoTrendingAdapter("https://cg.test").fetch_batch(client))
        self.assertTrue(result.ok)
        self.assertTrue(result.records[0]["is_trending"])
        self.assertEqual(client.calls[1][1]["ids"], "solana,pepe")

    def test_trending_without_ids_skips_second_request(self):
        client = _DummyClient({"/search/trending": httpx.Response(200, json={"coins": []})})
        result = run(CoinGeckoTrendingAdapter("https://cg.test").fetch_batch(client))
        self.assertTrue(result.ok)
        self.assertEqual(result.records, [])
        self.assertEqual(len(client.calls), 1)


def _envelope(rows, code="0"):
    return httpx.Response(200, json={"code": code, "msg": "", "data": rows})


class VenueAdapterTests(unittest.TestCase):
    def test_split_instrument_id(self):
        self.assertEqual(split_instrument_id("BTC-USDT"), ("BTC", "USDT"))
        self.assertEqual(split_instrument_id("eth/usdc"), ("ETH", "USDC"))
        self.assertEqual(split_instrument_id("SOLUSDT"), ("SOL", "USDT"))

    def test_only_live_instruments_of_type_kept(self):
        client = _DummyClient({
            "/market/instruments": _envelope([
                {"instId": "BTC-USDT", "instType": "SWAP", "state": "live", "baseCurrency": "BTC", "quoteCurrency": "USDT"},
                {"instId": "OLD-USDT", "instType": "SWAP", "state": "suspend"},
                {"instId": "ETH-USDT", "instType": "SPOT", "state": "live"},
            ]),
            "/market/tickers": _envelope([
                {"instId": "BTC-USDT", "last": "64000", "open24h": "62000"},
                {"instId": "OLD-USDT", "last": "1", "open24h": "1"},
                {"instId": "ETH-USDT", "last": "2000", "open24h": "1900"},
            ]),
        })
        result = run(VenueAdapter("https://venue.test").fetch_batch(client))
        self.assertTrue(result.ok)
        self.assertEqual([r["instId"] for r in result.records], ["BTC-USDT"])
        self.assertEqual(result.records[0]["baseCurrency"], "BTC")
        self.assertEqual(client.calls[0][1], {"instType": "SWAP"})

    def test_no_instruments_skips_tickers(self):
        client = _DummyClient({"/market/instruments": _envelope([])})
        result = run(VenueAdapter("https://venue.test").fetch_batch(client))
        self.assertTrue(result.ok)
        self.assertEqual(len(client.calls), 1)

    def test_error_envelope_becomes_parse_error(self):
        client = _DummyClient({"/market/instruments": _envelope([], code="152001")})
        result = run(VenueAdapter("https://venue.test").fetch_batch(client))
        self.assertIsInstance(result.error, ParseError)

    def test_ticker_failure_degrades_to_empty_batch(self):
        client = _DummyClient({
            "/market/instruments": _envelope([{"instId": "BTC-USDT", "instType": "SWAP", "state": "live"}]),
            "/market/tickers": httpx.ReadTimeout("slow"),
        })
        result = run(VenueAdapter("https://venue.test").fetch_batch(client))
        self.assertIsInstance(result.error, TransportError)
        self.assertEqual(result.records, [])


class RegistryTests(unittest.TestCase):
    def test_default_sources_registered(self):
        names = set(list_sources())
        self.assertTrue({"venue", "coingecko_markets", "coingecko_trending"} <= names)

    def test_build_sources_expands_pages_and_skips_unknown(self):
        adapters = build_sources(["coingecko_markets", "nope", "venue"], Settings(pages=2))
        self.assertEqual([a.name for a in adapters], ["coingecko_markets[1]", "coingecko_markets[2]", "venue"])


if __name__ == "__main__":
    unittest.main()
