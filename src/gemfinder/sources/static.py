from __future__ import annotations

from typing import Any, Dict, List, Optional

from ..errors import SourceError
from .base import AdapterResult


class StaticSource:
    """In-memory source adapter serving canned raw records.

    Useful for demos and tests. ``error`` makes every fetch fail with that
    error, mimicking an unreachable feed.
    """

    def __init__(self, name: str, kind: str, records: List[Dict[str, Any]], *, family: Optional[str] = None,
                 multi_instrument: bool = False, error: Optional[SourceError] = None):
        self.name = name
        self.kind = kind
        self.family = family or name
        self.multi_instrument = multi_instrument
        self._records = [dict(r) for r in records]
        self.error = error
        self.calls = 0

    async def fetch_batch(self, client=None) -> AdapterResult:
        self.calls += 1
        if self.error is not None:
            return AdapterResult.failed(self.name, self.kind, self.error)
        return AdapterResult(source=self.name, kind=self.kind, records=[dict(r) for r in self._records])
