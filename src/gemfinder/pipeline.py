"""Aggregation, scoring and fallback pipeline.

One refresh runs the PRIMARY stage (venue instruments/tickers enriched by the
CoinGecko listing and trending feeds) and, only when that stage yields no
scored token, the FALLBACK stage (broad CoinGecko top-volume listing with the
simplified range-based scoring). Adapters of a stage are fetched concurrently
and joined before normalization; each adapter is attempted at most once per
refresh, results are shared between stages by adapter name.
"""
from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Callable, Dict, List, Optional, Protocol, Sequence, Tuple

import httpx

from .aggregator import SourceBatch, aggregate
from .config import Settings, load_settings
from .errors import TransportError
from .models import MarketSnapshot, OutcomeKind, RunOutcome, ScoredToken
from .normalizer import normalize_batch
from .ranking import RankingState, rank
from .scoring import apply_highlights, score_fallback, score_population
from .sources import AdapterResult, build_sources
from .sources.base import log_failure

logger = logging.getLogger(__name__)

STATUS_FETCHING = "Fetching data..."
STATUS_NO_DATA = "No listed tokens with sufficient data found. Try again later."
STATUS_FAILED = "Failed to fetch data. Please check your internet connection or try again later."
STATUS_NO_MATCH = "No tokens found matching your search."


class Stage(str, Enum):
    PRIMARY = "primary"
    FALLBACK = "fallback"
    DONE = "done"


class Presenter(Protocol):
    """Visual collaborator: receives the ranked view and status messages."""

    def show(self, view: Sequence[ScoredToken], query: str) -> None:
        ...

    def show_status(self, message: str) -> None:
        ...


async def collect(adapters: Sequence[object], client: httpx.AsyncClient, wait_s: float) -> List[AdapterResult]:
    """Fan out ``fetch_batch`` over ``adapters`` and join the results in adapter order.

    A slow adapter is cut off after ``wait_s`` seconds and reported as a
    transport failure; it never holds back the others.
    """
    async def _one(adapter) -> AdapterResult:
        try:
            return await asyncio.wait_for(adapter.fetch_batch(client), timeout=wait_s)
        except asyncio.TimeoutError:
            return AdapterResult.failed(
                adapter.name, "", TransportError(adapter.name, f"no response within {wait_s:.1f}s"),
            )

    results = list(await asyncio.gather(*(_one(a) for a in adapters)))
    for r in results:
        log_failure(r)
    return results


def is_fallback_eligible(snap: MarketSnapshot, max_market_cap_rank: int) -> bool:
    """Broad-listing filter: traded, ranked within the cap, with a 24h range."""
    if snap.volume_24h <= 0 or snap.high_24h is None or snap.low_24h is None:
        return False
    if max_market_cap_rank > 0:
        return snap.market_cap_rank is not None and snap.market_cap_rank <= max_market_cap_rank
    return True


class FallbackController:
    """Two-state machine: PRIMARY, then FALLBACK iff PRIMARY scored nothing.

    Terminal on the first non-empty population; when FALLBACK is empty too
    the run ends with EMPTY_ALL (or SOURCE_ERROR if every adapter failed).
    There is no further retry.
    """

    def __init__(self, settings: Settings, primary: Sequence[object], fallback: Sequence[object]):
        self.settings = settings
        self.primary = list(primary)
        self.fallback = list(fallback)
        self.stage = Stage.PRIMARY

    async def _fetch(self, adapters: Sequence[object], client: httpx.AsyncClient,
                     seen: Dict[str, AdapterResult]) -> List[Tuple[object, AdapterResult]]:
        pending = [a for a in adapters if a.name not in seen]
        for adapter, result in zip(pending, await collect(pending, client, self.settings.adapter_wait_s)):
            seen[adapter.name] = result
        return [(a, seen[a.name]) for a in adapters]

    @staticmethod
    def _batches(fetched: Sequence[Tuple[object, AdapterResult]]) -> List[SourceBatch]:
        return [
            SourceBatch(
                family=adapter.family,
                snapshots=normalize_batch(result, adapter.family),
                multi_instrument=bool(getattr(adapter, "multi_instrument", False)),
            )
            for adapter, result in fetched if result.ok
        ]

    def _anchor(self) -> Optional[str]:
        anchor = self.settings.anchor_source
        if anchor and any(a.family == anchor for a in self.primary):
            return anchor
        return None

    async def run_primary(self, client: httpx.AsyncClient, seen: Dict[str, AdapterResult]) -> List[ScoredToken]:
        fetched = await self._fetch(self.primary, client, seen)
        merged = aggregate(
            self._batches(fetched),
            denylist=self.settings.denylist,
            exclude_usd_like=self.settings.exclude_usd_like,
            anchor=self._anchor(),
        )
        return score_population(merged, self.settings.strategy)

    async def run_fallback(self, client: httpx.AsyncClient, seen: Dict[str, AdapterResult]) -> List[ScoredToken]:
        fetched = await self._fetch(self.fallback, client, seen)
        merged = aggregate(
            self._batches(fetched),
            denylist=self.settings.denylist,
            exclude_usd_like=self.settings.exclude_usd_like,
        )
        eligible = [s for s in merged if is_fallback_eligible(s, self.settings.max_market_cap_rank)]
        return score_fallback(eligible)

    async def run(self, client: httpx.AsyncClient) -> Tuple[RunOutcome, List[ScoredToken]]:
        seen: Dict[str, AdapterResult] = {}
        self.stage = Stage.PRIMARY
        tokens = await self.run_primary(client, seen)
        if tokens:
            self.stage = Stage.DONE
            logger.info(f"[PIPELINE] primary stage scored {len(tokens)} tokens")
            return RunOutcome(OutcomeKind.SUCCESS, len(tokens), Stage.PRIMARY.value, _errors(seen)), tokens

        self.stage = Stage.FALLBACK
        logger.info("[PIPELINE] primary stage empty, switching to fallback sources")
        tokens = await self.run_fallback(client, seen)
        self.stage = Stage.DONE
        errors = _errors(seen)
        if tokens:
            logger.info(f"[PIPELINE] fallback stage scored {len(tokens)} tokens")
            return RunOutcome(OutcomeKind.EMPTY_PRIMARY, len(tokens), Stage.FALLBACK.value, errors), tokens

        all_failed = bool(seen) and all(not r.ok for r in seen.values())
        kind = OutcomeKind.SOURCE_ERROR if all_failed else OutcomeKind.EMPTY_ALL
        logger.warning(f"[PIPELINE] no tokens after fallback ({kind.value}, {len(errors)} source errors)")
        return RunOutcome(kind, 0, None, errors), []


def _errors(seen: Dict[str, AdapterResult]) -> list:
    return [r.error for r in seen.values() if r.error is not None]


def _default_client_factory(settings: Settings) -> Callable[[], httpx.AsyncClient]:
    def factory() -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=settings.http_timeout_s,
            headers={"User-Agent": settings.user_agent, "Accept": "application/json"},
        )
    return factory


class GemFinder:
    """Facade used by presenters: ``refresh()``, ``get_ranked_view()``, ``set_query()``.

    Re-entrancy: a ``refresh()`` issued while another run is in flight
    cancels that run and starts over. A cancelled run never publishes, and
    its caller receives the outcome of the run that superseded it.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        primary: Optional[Sequence[object]] = None,
        fallback: Optional[Sequence[object]] = None,
        presenter: Optional[Presenter] = None,
        client_factory: Optional[Callable[[], httpx.AsyncClient]] = None,
    ):
        self.settings = settings or load_settings()
        self.primary = list(primary) if primary is not None else build_sources(self.settings.primary_sources, self.settings)
        self.fallback = list(fallback) if fallback is not None else build_sources(self.settings.fallback_sources, self.settings)
        self.presenter = presenter
        self.client_factory = client_factory or _default_client_factory(self.settings)
        self.state = RankingState()
        self.last_outcome: Optional[RunOutcome] = None
        self._task: Optional[asyncio.Task] = None
        self.runs = 0

    def get_ranked_view(self) -> Tuple[ScoredToken, ...]:
        return self.state.view

    @property
    def query(self) -> str:
        return self.state.query

    def set_query(self, text: str) -> Tuple[ScoredToken, ...]:
        view = self.state.set_query(text)
        self._present(view)
        return view

    @property
    def in_flight(self) -> bool:
        return self._task is not None and not self._task.done()

    async def refresh(self) -> RunOutcome:
        if self.in_flight:
            logger.info("[PIPELINE] refresh requested while a run is in flight, restarting")
            self._task.cancel()
        task = asyncio.ensure_future(self._run())
        self._task = task
        while True:
            try:
                return await asyncio.shield(task)
            except asyncio.CancelledError:
                if task.cancelled() and self._task is not None and self._task is not task:
                    task = self._task
                    continue
                raise

    async def _run(self) -> RunOutcome:
        self.runs += 1
        self._status(STATUS_FETCHING)
        controller = FallbackController(self.settings, self.primary, self.fallback)
        try:
            async with self.client_factory() as client:
                outcome, tokens = await controller.run(client)
        except asyncio.CancelledError:
            logger.debug("[PIPELINE] run cancelled before publishing")
            raise
        except Exception:
            logger.exception("[PIPELINE] refresh failed")
            self._status(STATUS_FAILED)
            raise
        ranked = rank(tokens, self.settings.rank_by, self.settings.top_n)
        # highlights cover the ranked top-N only, in rank_by order
        ranked = apply_highlights(ranked, self.settings.highlight_fraction)
        view = self.state.publish(ranked)
        self.last_outcome = outcome
        if outcome.has_data:
            self._present(view)
        elif outcome.kind is OutcomeKind.SOURCE_ERROR:
            self._status(STATUS_FAILED)
        else:
            self._status(STATUS_NO_DATA)
        return outcome

    def _present(self, view: Sequence[ScoredToken]) -> None:
        if self.presenter is None:
            return
        if not view and self.state.population:
            self.presenter.show_status(STATUS_NO_MATCH)
            return
        self.presenter.show(view, self.state.query)

    def _status(self, message: str) -> None:
        if self.presenter is not None:
            self.presenter.show_status(message)
