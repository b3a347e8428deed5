"""API routers."""
from .engine import router as engine_router, ws_router as engine_ws_router

__all__ = ["engine_router", "engine_ws_router"]
