"""
Ranked gems endpoints
Exposes the current ranked view, the live filter query and manual refresh.
"""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel

from ..pipeline import GemFinder

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/gems", tags=["gems"])


class QueryRequest(BaseModel):
    query: str = ""


def get_finder(request: Request) -> GemFinder:
    finder: Optional[GemFinder] = getattr(request.app.state, "finder", None)
    if finder is None:
        raise HTTPException(status_code=503, detail="ranking pipeline not initialised")
    return finder


def _view_payload(finder: GemFinder) -> dict:
    view = finder.get_ranked_view()
    outcome = finder.last_outcome
    return {
        "tokens": [t.to_dict() for t in view],
        "query": finder.query,
        "count": len(view),
        "outcome": outcome.to_dict() if outcome is not None else None,
    }


@router.get("")
async def get_gems(finder: GemFinder = Depends(get_finder)):
    """
    Return the current ranked and filtered token view
    """
    return _view_payload(finder)


@router.put("/query")
async def set_query(body: QueryRequest, finder: GemFinder = Depends(get_finder)):
    """
    Update the live filter and return the recomputed view
    """
    finder.set_query(body.query)
    return _view_payload(finder)


@router.post("/refresh")
async def refresh(finder: GemFinder = Depends(get_finder)):
    """
    Re-fetch every source and rebuild the ranking
    """
    outcome = await finder.refresh()
    logger.info(f"[GEMS] refresh finished: {outcome.kind.value} ({outcome.count} tokens)")
    payload = _view_payload(finder)
    payload["outcome"] = outcome.to_dict()
    return payload
