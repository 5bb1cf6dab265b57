"""Source adapters package."""

from .base import COINGECKO_MARKET, VENUE_TICKER, AdapterResult, SourceAdapter
from .coingecko import CoinGeckoMarketsAdapter, CoinGeckoTrendingAdapter
from .registry import build_sources, get_source, list_sources, register_source, unregister_source
from .static import StaticSource
from .venue import VenueAdapter


def _venue_factory(settings):
    return [VenueAdapter(settings.venue_url, inst_type=settings.venue_inst_type)]


def _markets_factory(settings):
    return [
        CoinGeckoMarketsAdapter(settings.coingecko_url, page=page, per_page=settings.per_page)
        for page in range(1, settings.pages + 1)
    ]


def _trending_factory(settings):
    return [CoinGeckoTrendingAdapter(settings.coingecko_url)]


register_source("venue", _venue_factory)
register_source("coingecko_markets", _markets_factory)
register_source("coingecko_trending", _trending_factory)

__all__ = [
    "AdapterResult", "SourceAdapter", "VENUE_TICKER", "COINGECKO_MARKET",
    "VenueAdapter", "CoinGeckoMarketsAdapter", "CoinGeckoTrendingAdapter", "StaticSource",
    "register_source", "get_source", "unregister_source", "list_sources", "build_sources",
]
