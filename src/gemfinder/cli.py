"""Small CLI entrypoint for the gemfinder package."""
from __future__ import annotations

import asyncio
import json
import sys
from typing import Optional, Sequence

from . import __version__
from .config import configure_logging, load_settings
from .models import ScoredToken
from .pipeline import GemFinder
from .ranking import RankKey
from .scoring import ScoringStrategy
from .sources import COINGECKO_MARKET, VENUE_TICKER, StaticSource


def format_number(value: Optional[float]) -> str:
    """Abbreviate large numbers (1.23K, 4.56M, 7.89B, 1.00T)."""
    if value is None:
        return "-"
    abs_value = abs(value)
    for threshold, suffix in ((1e12, "T"), (1e9, "B"), (1e6, "M"), (1e3, "K")):
        if abs_value >= threshold:
            return f"{value / threshold:.2f}{suffix}"
    return f"{value:,.2f}"


class TextPresenter:
    """Plain-text presenter writing one row per token."""

    def __init__(self, stream=None, as_json: bool = False):
        self.stream = stream or sys.stdout
        self.as_json = as_json

    def show(self, view: Sequence[ScoredToken], query: str) -> None:
        if self.as_json:
            print(json.dumps([t.to_dict() for t in view], indent=2), file=self.stream)
            return
        if query:
            print(f"filter: {query!r}", file=self.stream)
        for i, t in enumerate(view, start=1):
            star = "*" if t.is_trending else " "
            mark = ">" if t.highlighted else " "
            change = f"{t.change_pct_24h:+.2f}%" if t.change_pct_24h is not None else "-"
            print(
                f"{mark}{i:>3} {star}{t.display_name[:20]:<20} {t.symbol_text.upper():<8} "
                f"{t.category.value:<8} {t.completion_pct:5.1f}% score={t.momentum_score:8.3f} "
                f"${format_number(t.price):>10} vol=${format_number(t.volume_24h):>9} "
                f"24h={change:>8} mcap=${format_number(t.market_cap)}",
                file=self.stream,
            )

    def show_status(self, message: str) -> None:
        print(message, file=sys.stderr)


def demo_sources():
    """Static primary/fallback sources with a handful of sample assets."""
    venue = StaticSource("demo_venue", VENUE_TICKER, [
        {"instId": "BTC-USDT", "baseCurrency": "BTC", "last": "64000", "open24h": "62000",
         "high24h": "65000", "low24h": "61500", "volCurrency24h": "1200"},
        {"instId": "SOL-USDT", "baseCurrency": "SOL", "last": "142", "open24h": "150",
         "high24h": "151", "low24h": "138", "volCurrency24h": "90000"},
        {"instId": "DOGE-USDT", "baseCurrency": "DOGE", "last": "0.125", "open24h": "0.118",
         "high24h": "0.131", "low24h": "0.117", "volCurrency24h": "150000000"},
    ], family="venue", multi_instrument=True)
    listing = StaticSource("demo_listing", COINGECKO_MARKET, [
        {"id": "bitcoin", "symbol": "btc", "name": "Bitcoin", "image": "https://example.invalid/btc.png",
         "current_price": 64010, "total_volume": 3.1e10, "market_cap": 1.26e12, "market_cap_rank": 1,
         "price_change_percentage_1h_in_currency": 0.4, "price_change_percentage_24h": 3.2,
         "high_24h": 65010, "low_24h": 61490},
        {"id": "solana", "symbol": "sol", "name": "Solana", "image": "https://example.invalid/sol.png",
         "current_price": 142.1, "total_volume": 2.4e9, "market_cap": 6.6e10, "market_cap_rank": 5,
         "price_change_percentage_1h_in_currency": -0.8, "price_change_percentage_24h": -5.3,
         "high_24h": 151.2, "low_24h": 138.0},
    ], family="coingecko")
    return [venue, listing], [listing]


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Fetch, score and print the ranked token list."""
    import argparse

    parser = argparse.ArgumentParser(description="rank crypto assets by early momentum")
    parser.add_argument("--query", default="", help="filter by name or symbol substring")
    parser.add_argument("--top", type=int, default=None, help="number of tokens to keep")
    parser.add_argument("--rank-by", choices=[k.value for k in RankKey], default=None)
    parser.add_argument("--strategy", choices=[s.value for s in ScoringStrategy], default=None)
    parser.add_argument("--demo", action="store_true", help="use built-in sample data instead of live feeds")
    parser.add_argument("--json", action="store_true", help="print the view as JSON")
    parser.add_argument("--log-level", default=None)
    parser.add_argument("--version", action="store_true")
    args = parser.parse_args(argv)

    if args.version:
        print(f"gemfinder v{__version__}")
        return 0

    configure_logging(args.log_level)
    settings = load_settings()
    if args.top is not None:
        settings.top_n = max(1, args.top)
    if args.rank_by:
        settings.rank_by = RankKey(args.rank_by)
    if args.strategy:
        settings.strategy = ScoringStrategy(args.strategy)

    presenter = TextPresenter(as_json=args.json)
    kwargs = {}
    if args.demo:
        primary, fallback = demo_sources()
        kwargs = {"primary": primary, "fallback": fallback}
    finder = GemFinder(settings, presenter=presenter, **kwargs)
    if args.query:
        finder.state.set_query(args.query)

    outcome = asyncio.run(finder.refresh())
    return 0 if outcome.has_data else 1


if __name__ == "__main__":
    sys.exit(main())
