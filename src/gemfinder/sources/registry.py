"""Simple registry of source adapter factories.

A factory takes ``Settings`` and returns the adapters it contributes (the
paged markets listing contributes one adapter per page). Names are
lower-cased.
"""
import logging
from typing import Callable, List, Optional, Sequence

logger = logging.getLogger(__name__)

_SOURCES: dict[str, Callable] = {}


def register_source(name: str, factory: Callable) -> None:
    _SOURCES[name.lower()] = factory


def get_source(name: str) -> Optional[Callable]:
    return _SOURCES.get(name.lower())


def unregister_source(name: str) -> None:
    _SOURCES.pop(name.lower(), None)


def list_sources() -> dict[str, Callable]:
    """Return a shallow copy of the registered factories map."""
    return dict(_SOURCES)


def build_sources(names: Sequence[str], settings) -> List[object]:
    """Instantiate the adapters for ``names`` in order, skipping unknown names."""
    adapters: List[object] = []
    for name in names:
        factory = get_source(name)
        if factory is None:
            logger.warning(f"[SOURCES] unknown source {name!r} ignored")
            continue
        adapters.extend(factory(settings))
    return adapters
