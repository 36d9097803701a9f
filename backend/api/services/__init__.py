"""Services layer - Business logic

Queue ordering, queue CRUD and the drop engine. Services are created once
per process in ``api.core.dependencies`` and injected into routers.
"""

from .auth_service import AuthService
from .drop_engine import Decision, DropEngine
from .errors import NotFoundError, PartialWriteError, QueueError, ValidationError
from .queue_ordering import QueueOrderingManager
from .queue_service import QueueService

__all__ = [
    "AuthService",
    "Decision",
    "DropEngine",
    "NotFoundError",
    "PartialWriteError",
    "QueueError",
    "QueueOrderingManager",
    "QueueService",
    "ValidationError",
]
