"""Dependency injection utilities for FastAPI"""

import logging
from dataclasses import dataclass

import asyncpg
from fastapi import Cookie, Depends, HTTPException

from api.core.config import get_settings
from api.core.database import get_database_manager
from api.services import AuthService, DropEngine, QueueOrderingManager, QueueService
from api.services.auth_service import ROLE_MASTER, ROLE_USER
from shared.repositories import DropRepository, QueueItemRepository, QueueRepository

logger = logging.getLogger(__name__)


# ============================================
# Service Dependencies
# ============================================


def get_auth_service() -> AuthService:
    """Get AuthService instance (dependency injection)"""
    settings = get_settings()
    return AuthService(
        secret_key=settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
        expire_days=settings.jwt_expire_days,
    )


def get_db_pool() -> asyncpg.Pool:
    db_manager = get_database_manager()
    if not db_manager.is_connected:
        raise HTTPException(status_code=503, detail="Database not ready")
    return db_manager.pool


# Ordering locks and drop sessions live in process memory, so these two
# are process-wide singletons bound to the pool.
_ordering: QueueOrderingManager | None = None
_drop_engine: DropEngine | None = None


def build_ordering_manager(pool: asyncpg.Pool) -> QueueOrderingManager:
    global _ordering
    if _ordering is None:
        _ordering = QueueOrderingManager(QueueItemRepository(pool))
    return _ordering


def build_drop_engine(pool: asyncpg.Pool) -> DropEngine:
    global _drop_engine
    if _drop_engine is None:
        settings = get_settings()
        _drop_engine = DropEngine(
            QueueRepository(pool),
            DropRepository(pool),
            build_ordering_manager(pool),
            max_drop_count=settings.max_drop_count,
            history_hours=settings.drop_history_hours,
        )
    return _drop_engine


def reset_services() -> None:
    """Drop the singletons. Call on app shutdown."""
    global _ordering, _drop_engine
    _ordering = None
    _drop_engine = None


def get_queue_service(pool: asyncpg.Pool = Depends(get_db_pool)) -> QueueService:
    return QueueService(
        QueueRepository(pool), QueueItemRepository(pool), build_ordering_manager(pool)
    )


def get_drop_engine(pool: asyncpg.Pool = Depends(get_db_pool)) -> DropEngine:
    return build_drop_engine(pool)


# ============================================
# Authentication Dependencies
# ============================================


@dataclass
class CurrentUser:
    id: str
    name: str
    role: str

    @property
    def is_master(self) -> bool:
        return self.role == ROLE_MASTER


def get_current_user(auth_token: str | None = Cookie(None)) -> CurrentUser:
    """Verify the JWT cookie and return the acting guild member"""
    if not auth_token:
        logger.warning("No auth token provided")
        raise HTTPException(status_code=401, detail="Not logged in")

    payload = get_auth_service().verify_token(auth_token)
    if not payload:
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    return CurrentUser(
        id=str(payload["sub"]),
        name=str(payload.get("name") or ""),
        role=str(payload.get("role") or ROLE_USER),
    )


def require_master(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    """Only masters may curate queues and run drops"""
    if not user.is_master:
        logger.warning(f"User {user.id} attempted a master-only action")
        raise HTTPException(status_code=403, detail="Master role required")
    return user
