"""API Routers package

Routers are organized by feature domain.
"""

from . import drops_router, queues_router

__all__ = [
    "drops_router",
    "queues_router",
]
