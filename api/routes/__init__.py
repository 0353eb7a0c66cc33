"""API route modules."""

from routes.health_routes import router as health_router
from routes.streak_routes import router as streaks_router

__all__ = [
    "health_router",
    "streaks_router",
]
