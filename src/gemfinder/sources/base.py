from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

import httpx

from ..errors import ParseError, SourceError, TransportError

logger = logging.getLogger(__name__)

# source kinds understood by the normalizer
VENUE_TICKER = "venue_ticker"
COINGECKO_MARKET = "coingecko_market"


@dataclass
class AdapterResult:
    """Batch returned by a source adapter: records, or an empty batch plus the error."""

    source: str
    kind: str
    records: List[Dict[str, Any]] = field(default_factory=list)
    error: Optional[SourceError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def failed(cls, source: str, kind: str, error: SourceError) -> "AdapterResult":
        return cls(source=source, kind=kind, records=[], error=error)


class SourceAdapter(Protocol):
    """Protocol for market-data source adapters.

    ``family`` groups adapters whose records share identity semantics (all
    CoinGecko adapters are one family). ``multi_instrument`` families list the
    same asset several times (one per trading instrument).
    """

    name: str
    family: str
    multi_instrument: bool

    async def fetch_batch(self, client: httpx.AsyncClient) -> AdapterResult:
        """Fetch one batch. Must not raise: failures become ``AdapterResult.failed``."""


async def get_json(client: httpx.AsyncClient, url: str, *, source: str, params: Optional[Dict[str, Any]] = None) -> Any:
    """GET ``url`` and decode JSON, mapping failures onto the source error taxonomy."""
    try:
        resp = await client.get(url, params=params)
    except httpx.TimeoutException as e:
        raise TransportError(source, f"timeout fetching {url}: {e}") from e
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        raise TransportError(source, f"request to {url} failed: {e}") from e
    if resp.status_code < 200 or resp.status_code >= 300:
        raise TransportError(source, f"HTTP {resp.status_code} from {url}", status=resp.status_code)
    try:
        return resp.json()
    except (json.JSONDecodeError, ValueError) as e:
        raise ParseError(source, f"invalid JSON from {url}: {e}") from e


def log_failure(result: AdapterResult) -> None:
    if result.error is not None:
        logger.warning(f"[SOURCES] {result.source} degraded to empty batch: {result.error}")
