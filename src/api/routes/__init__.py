"""API route modules."""

from src.api.routes.health import router as health_router
from src.api.routes.movement_lines import router as movement_lines_router
from src.api.routes.movement_tasks import router as movement_tasks_router
from src.api.routes.movements import router as movements_router

__all__ = [
    "health_router",
    "movements_router",
    "movement_lines_router",
    "movement_tasks_router",
]
