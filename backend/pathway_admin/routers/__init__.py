"""Pathway Admin - API Routers"""
from .auth import router as auth_router
from .dashboard import router as dashboard_router
from .analytics import router as analytics_router
from .reports import router as reports_router
from .users import router as users_router
from .content import router as content_router
from .support import router as support_router

__all__ = [
    "auth_router",
    "dashboard_router",
    "analytics_router",
    "reports_router",
    "users_router",
    "content_router",
    "support_router",
]
