import os
import sys
import unittest

# Ensure src/ on path
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from gemfinder.normalizer import normalize, normalize_batch, to_float
from gemfinder.sources import COINGECKO_MARKET, VENUE_TICKER, AdapterResult


def cg_row(**overrides):
    row = {
        "id": "bitcoin", "symbol": "btc", "name": "Bitcoin", "image": "https://img/btc.png",
        "current_price": 100.0, "total_volume": 5000.0, "market_cap": 1e6, "market_cap_rank": 1,
        "price_change_percentage_1h_in_currency": 1.5, "price_change_percentage_1h": 9.9,
        "price_change_percentage_24h": 4.0, "high_24h": 110.0, "low_24h": 90.0,
    }
    row.update(overrides)
    return row


class CoinGeckoNormalizeTests(unittest.TestCase):
    def test_maps_fields(self):
        snap = normalize(cg_row(), COINGECKO_MARKET, "coingecko")
        self.assertEqual(snap.asset_key, "btc")
        self.assertEqual(snap.symbol_text, "BTC")
        self.assertEqual(snap.display_name, "Bitcoin")
        self.assertEqual(snap.provider_id, "bitcoin")
        self.assertEqual(snap.source, "coingecko")
        self.assertEqual(snap.market_cap_rank, 1)
        self.assertFalse(snap.is_trending)

    def test_prefers_in_currency_change(self):
        snap = normalize(cg_row(), COINGECKO_MARKET)
        self.assertEqual(snap.change_pct_1h, 1.5)

    def test_generic_change_used_when_in_currency_missing(self):
        snap = normalize(cg_row(price_change_percentage_1h_in_currency=None), COINGECKO_MARKET)
        self.assertEqual(snap.change_pct_1h, 9.9)

    def test_missing_1h_change_is_none(self):
        row = cg_row()
        del row["price_change_percentage_1h_in_currency"]
        del row["price_change_percentage_1h"]
        self.assertIsNone(normalize(row, COINGECKO_MARKET).change_pct_1h)

    def test_missing_24h_change_drops_record(self):
        self.assertIsNone(normalize(cg_row(price_change_percentage_24h=None), COINGECKO_MARKET))

    def test_non_positive_or_nan_price_drops_record(self):
        self.assertIsNone(normalize(cg_row(current_price=0), COINGECKO_MARKET))
        self.assertIsNone(normalize(cg_row(current_price=-3), COINGECKO_MARKET))
        self.assertIsNone(normalize(cg_row(current_price=float("nan")), COINGECKO_MARKET))
        self.assertIsNone(normalize(cg_row(current_price=None), COINGECKO_MARKET))

    def test_unknown_market_cap_defaults_to_zero(self):
        snap = normalize(cg_row(market_cap=None, total_volume=None), COINGECKO_MARKET)
        self.assertEqual(snap.market_cap, 0.0)
        self.assertEqual(snap.volume_24h, 0.0)

    def test_trending_flag_carried(self):
        self.assertTrue(normalize(cg_row(is_trending=True), COINGECKO_MARKET).is_trending)


class VenueNormalizeTests(unittest.TestCase):
    def ticker(self, **overrides):
        tk = {"instId": "ETH-USDT", "baseCurrency": "ETH", "last": "2100", "open24h": "2000",
              "high24h": "2150", "low24h": "1980", "volCurrency24h": "10"}
        tk.update(overrides)
        return tk

    def test_change_from_open_and_quote_volume(self):
        snap = normalize(self.ticker(), VENUE_TICKER, "venue")
        self.assertEqual(snap.asset_key, "eth")
        self.assertEqual(snap.instrument_id, "ETH-USDT")
        self.assertAlmostEqual(snap.change_pct_24h, 5.0)
        self.assertIsNone(snap.change_pct_1h)
        self.assertAlmostEqual(snap.volume_24h, 21000.0)
        self.assertEqual(snap.high_24h, 2150.0)

    def test_quote_volume_field_takes_precedence(self):
        snap = normalize(self.ticker(volCurrencyQuote24h="777"), VENUE_TICKER)
        self.assertEqual(snap.volume_24h, 777.0)

    def test_base_parsed_from_instrument_id(self):
        tk = self.ticker()
        del tk["baseCurrency"]
        self.assertEqual(normalize(tk, VENUE_TICKER).asset_key, "eth")

    def test_zero_open_drops_record(self):
        self.assertIsNone(normalize(self.ticker(open24h="0"), VENUE_TICKER))

    def test_batch_keeps_valid_records(self):
        result = AdapterResult(source="venue", kind=VENUE_TICKER,
                               records=[self.ticker(), self.ticker(last="abc"), "garbage"])
        snaps = normalize_batch(result, "venue")
        self.assertEqual(len(snaps), 1)


class ToFloatTests(unittest.TestCase):
    def test_to_float(self):
        self.assertEqual(to_float("1.5"), 1.5)
        self.assertIsNone(to_float(True))
        self.assertIsNone(to_float("inf"))
        self.assertIsNone(to_float({}))


if __name__ == "__main__":
    unittest.main()
