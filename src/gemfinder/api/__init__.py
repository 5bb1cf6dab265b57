from .gems import router as gems_router

__all__ = ["gems_router"]
