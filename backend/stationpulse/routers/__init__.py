"""Station Pulse - API Routers"""
from .stations import router as stations_router
from .reports import router as reports_router
from .reporters import router as reporters_router

__all__ = [
    "stations_router",
    "reports_router",
    "reporters_router",
]
