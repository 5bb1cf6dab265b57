import os
import sys
import unittest

# Ensure src/ on path
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from gemfinder.aggregator import SourceBatch, aggregate, is_denylisted, merge_records
from gemfinder.models import MarketSnapshot


def snap(key="abc", **kw):
    base = dict(asset_key=key, display_name=key.upper(), symbol_text=key.upper(), price=1.0,
                change_pct_24h=1.0, high_24h=1.2, low_24h=0.9)
    base.update(kw)
    return MarketSnapshot(**base)


class InstrumentMergeTests(unittest.TestCase):
    def test_same_venue_family_volumes_are_summed(self):
        a = SourceBatch("venue", [snap("abc", volume_24h=100.0, instrument_id="ABC-USDT")], multi_instrument=True)
        b = SourceBatch("venue", [snap("abc", volume_24h=50.0, instrument_id="ABC-USDC")], multi_instrument=True)
        merged = aggregate([a, b])
        self.assertEqual(len(merged), 1)
        self.assertEqual(merged[0].volume_24h, 150.0)

    def test_duplicate_instrument_counted_once(self):
        batch = SourceBatch("venue", [
            snap("abc", volume_24h=100.0, instrument_id="ABC-USDT"),
            snap("abc", volume_24h=100.0, instrument_id="ABC-USDT"),
        ], multi_instrument=True)
        self.assertEqual(aggregate([batch])[0].volume_24h, 100.0)

    def test_price_taken_from_highest_volume_instrument(self):
        batch = SourceBatch("venue", [
            snap("abc", price=1.0, volume_24h=10.0, instrument_id="ABC-USDC"),
            snap("abc", price=2.0, volume_24h=90.0, instrument_id="ABC-USDT"),
        ], multi_instrument=True)
        merged = aggregate([batch])[0]
        self.assertEqual(merged.price, 2.0)
        self.assertEqual(merged.volume_24h, 100.0)


class CrossProviderMergeTests(unittest.TestCase):
    def test_richer_record_keeps_image(self):
        bare = SourceBatch("venue", [snap("abc", volume_24h=100.0)], multi_instrument=True)
        rich = SourceBatch("coingecko", [snap("abc", display_name="Alpha Beta", image_url="https://img/abc.png",
                                              volume_24h=50.0, provider_id="alpha-beta")])
        merged = aggregate([bare, rich])
        self.assertEqual(len(merged), 1)
        self.assertEqual(merged[0].image_url, "https://img/abc.png")
        self.assertEqual(merged[0].display_name, "Alpha Beta")
        # volumes are not summed across providers
        self.assertEqual(merged[0].volume_24h, 50.0)

    def test_trending_flag_from_either_side(self):
        rich = snap("abc", display_name="Alpha", image_url="x")
        trending = snap("abc", is_trending=True)
        self.assertTrue(merge_records(rich, trending).is_trending)
        self.assertTrue(merge_records(trending, rich).is_trending)

    def test_gaps_filled_from_poorer_record(self):
        rich = snap("abc", display_name="Alpha", image_url="x", change_pct_1h=None, market_cap=0.0)
        poor = snap("abc", change_pct_1h=2.5, market_cap=123.0)
        merged = merge_records(poor, rich)
        self.assertEqual(merged.image_url, "x")
        self.assertEqual(merged.change_pct_1h, 2.5)
        self.assertEqual(merged.market_cap, 123.0)

    def test_trending_row_marks_existing_listing_row(self):
        batch = SourceBatch("coingecko", [
            snap("abc", provider_id="alpha", display_name="Alpha", image_url="x"),
            snap("abc", provider_id="alpha", display_name="Alpha", image_url="x", is_trending=True),
        ])
        merged = aggregate([batch])
        self.assertEqual(len(merged), 1)
        self.assertTrue(merged[0].is_trending)

    def test_ambiguous_ticker_keeps_first_candidate(self):
        batch = SourceBatch("coingecko", [
            snap("uni", provider_id="uniswap", display_name="Uniswap", volume_24h=900.0),
            snap("uni", provider_id="universe-token", display_name="Universe", volume_24h=5.0),
        ])
        merged = aggregate([batch])
        self.assertEqual(len(merged), 1)
        self.assertEqual(merged[0].provider_id, "uniswap")


class AnchorAndDenylistTests(unittest.TestCase):
    def test_anchor_family_defines_universe(self):
        venue = SourceBatch("venue", [snap("abc")], multi_instrument=True)
        listing = SourceBatch("coingecko", [snap("abc", display_name="Alpha", image_url="x"), snap("xyz")])
        merged = aggregate([venue, listing], anchor="venue")
        self.assertEqual([m.asset_key for m in merged], ["abc"])
        self.assertEqual(merged[0].image_url, "x")

    def test_missing_anchor_family_yields_nothing(self):
        listing = SourceBatch("coingecko", [snap("abc")])
        self.assertEqual(aggregate([listing], anchor="venue"), [])

    def test_denylist_applied(self):
        batch = SourceBatch("coingecko", [snap("usdt"), snap("dai"), snap("eur"), snap("fdusd"), snap("sol")])
        merged = aggregate([batch], denylist=("USDT", "DAI", "EUR"))
        self.assertEqual([m.asset_key for m in merged], ["sol"])

    def test_usd_like_heuristic_can_be_disabled(self):
        self.assertTrue(is_denylisted("XUSD", ()))
        self.assertFalse(is_denylisted("XUSD", (), exclude_usd_like=False))
        self.assertFalse(is_denylisted("BTC", ("USDT",)))


if __name__ == "__main__":
    unittest.main()
