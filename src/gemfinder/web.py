from __future__ import annotations

import asyncio
import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .api import gems_router
from .config import configure_logging, get_config, get_cors_origins
from .pipeline import GemFinder

logger = logging.getLogger(__name__)


def create_app(finder: Optional[GemFinder] = None, *, refresh_on_startup: Optional[bool] = None) -> FastAPI:
    """Build the API app around ``finder`` (a live-feed GemFinder by default)."""
    app = FastAPI(title="gemfinder", version=__version__)
    app.state.finder = finder
    app.state.startup_task = None

    app.add_middleware(
        CORSMiddleware,
        allow_origins=get_cors_origins(),
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(gems_router)

    @app.get('/health')
    def health():
        f = app.state.finder
        return {
            'status': 'ok',
            'version': __version__,
            'tokens': len(f.get_ranked_view()) if f is not None else 0,
            'refreshing': bool(f is not None and f.in_flight),
        }

    @app.on_event('startup')
    async def _on_startup():
        if app.state.finder is None:
            app.state.finder = GemFinder()
        run_initial = get_config('refresh_on_startup', True) if refresh_on_startup is None else refresh_on_startup
        if run_initial:
            app.state.startup_task = asyncio.create_task(_initial_refresh(app.state.finder))

    @app.on_event('shutdown')
    async def _on_shutdown():
        task = app.state.startup_task
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        app.state.startup_task = None

    return app


async def _initial_refresh(finder: GemFinder) -> None:
    try:
        outcome = await finder.refresh()
        logger.info(f"[WEB] initial refresh: {outcome.kind.value} ({outcome.count} tokens)")
    except asyncio.CancelledError:
        raise
    except Exception:
        logger.exception("[WEB] initial refresh failed")


def main() -> None:
    import os

    import uvicorn

    configure_logging()
    uvicorn.run(create_app(), host=os.getenv("GEM_HOST", "127.0.0.1"), port=int(os.getenv("GEM_PORT", "8000")))


if __name__ == "__main__":
    main()
