"""Error taxonomy for the ranking pipeline.

Adapter-level errors (``TransportError``, ``ParseError``) never leave an
adapter: they are captured in its ``AdapterResult``. ``SchemaGapError`` is
raised and caught per record inside the normalizer. Only
``EmptyPopulationError`` is meant to reach callers of ``refresh()``.
"""
from __future__ import annotations

from typing import Optional


class GemFinderError(Exception):
    """Base class for every error raised by this package."""


class SourceError(GemFinderError):
    """A source adapter could not produce a batch."""

    def __init__(self, source: str, message: str, *, status: Optional[int] = None) -> None:
        self.source = source
        self.status = status
        super().__init__(f"{source}: {message}")


class TransportError(SourceError):
    """Network failure, timeout or non-success HTTP status."""


class ParseError(SourceError):
    """Response body could not be decoded or had an unexpected shape."""


class SchemaGapError(GemFinderError):
    """A raw record is missing a required field or carries an invalid value."""

    def __init__(self, field: str, value: object = None) -> None:
        self.field = field
        self.value = value
        super().__init__(f"missing or invalid field {field!r}: {value!r}")


class EmptyPopulationError(GemFinderError):
    """No record survived the primary and the fallback stages."""
