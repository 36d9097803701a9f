"""Repository for queues and queue_items tables."""

from __future__ import annotations

import logging
from collections.abc import Mapping

import asyncpg

from shared.cache import AsyncTTLCache, cached
from shared.models.queue import ItemStatus, Queue, QueueItem

logger = logging.getLogger(__name__)

# uuid columns are read back as text so models carry plain str ids
_QUEUE_COLUMNS = (
    "id::text AS id, title, item_name, image_url, created_by::text AS created_by, created_at"
)

_ITEM_COLUMNS = (
    "id::text AS id, queue_id::text AS queue_id, name, position, status, "
    "requested_by::text AS requested_by, created_at"
)

# Queue metadata is read on every drop start; items are never cached
_queue_cache = AsyncTTLCache(maxsize=64, ttl=60)


def _queue_key(queue_id: str) -> str:
    return f"queue:{queue_id}"


class QueueRepository:
    """Pure SQL operations for queues."""

    def __init__(self, pool: asyncpg.Pool) -> None:
        self.pool = pool

    async def list_queues(self) -> list[Queue]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                f"SELECT {_QUEUE_COLUMNS} FROM queues ORDER BY created_at ASC"
            )
            return [Queue(**dict(row)) for row in rows]

    @cached(cache=_queue_cache, key_func=lambda self, queue_id: _queue_key(queue_id))
    async def get_queue(self, queue_id: str) -> Queue | None:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {_QUEUE_COLUMNS} FROM queues WHERE id = $1",
                queue_id,
            )
            if not row:
                return None
            return Queue(**dict(row))

    async def create_queue(
        self,
        title: str,
        item_name: str,
        image_url: str | None,
        created_by: str | None,
    ) -> Queue:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                INSERT INTO queues (title, item_name, image_url, created_by)
                VALUES ($1, $2, $3, $4)
                RETURNING {_QUEUE_COLUMNS}
                """,
                title,
                item_name,
                image_url,
                created_by,
            )
            return Queue(**dict(row))

    async def update_queue(
        self,
        queue_id: str,
        *,
        title: str | None = None,
        item_name: str | None = None,
        image_url: str | None = None,
    ) -> Queue | None:
        """Update only the provided fields. Returns None if the queue is gone."""
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                UPDATE queues SET
                    title = COALESCE($2, title),
                    item_name = COALESCE($3, item_name),
                    image_url = COALESCE($4, image_url)
                WHERE id = $1
                RETURNING {_QUEUE_COLUMNS}
                """,
                queue_id,
                title,
                item_name,
                image_url,
            )
        _queue_cache.invalidate(_queue_key(queue_id))
        if not row:
            return None
        return Queue(**dict(row))

    async def delete_queue(self, queue_id: str) -> bool:
        """Delete a queue; items, drop events and participants cascade."""
        async with self.pool.acquire() as conn:
            result = await conn.execute("DELETE FROM queues WHERE id = $1", queue_id)
        _queue_cache.invalidate(_queue_key(queue_id))
        return result == "DELETE 1"


class QueueItemRepository:
    """Pure SQL operations for queue_items.

    Position arithmetic lives in the ordering manager; this class only
    reads rows and writes the values it is given.
    """

    def __init__(self, pool: asyncpg.Pool) -> None:
        self.pool = pool

    async def list_items(self, queue_id: str) -> list[QueueItem]:
        """All items of a queue: approved by position, then the rest by arrival."""
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                f"SELECT {_ITEM_COLUMNS} FROM queue_items "
                "WHERE queue_id = $1 "
                "ORDER BY position ASC NULLS LAST, created_at ASC",
                queue_id,
            )
            return [QueueItem(**dict(row)) for row in rows]

    async def list_approved_items(self, queue_id: str) -> list[QueueItem]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                f"SELECT {_ITEM_COLUMNS} FROM queue_items "
                "WHERE queue_id = $1 AND status = 'approved' "
                "ORDER BY position ASC, created_at ASC",
                queue_id,
            )
            return [QueueItem(**dict(row)) for row in rows]

    async def get_item(self, item_id: str) -> QueueItem | None:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {_ITEM_COLUMNS} FROM queue_items WHERE id = $1",
                item_id,
            )
            if not row:
                return None
            return QueueItem(**dict(row))

    async def insert_item(
        self,
        queue_id: str,
        name: str,
        status: ItemStatus,
        position: int | None,
        requested_by: str | None,
    ) -> QueueItem:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                INSERT INTO queue_items (queue_id, name, position, status, requested_by)
                VALUES ($1, $2, $3, $4, $5)
                RETURNING {_ITEM_COLUMNS}
                """,
                queue_id,
                name,
                position,
                str(status),
                requested_by,
            )
            return QueueItem(**dict(row))

    async def delete_item(self, item_id: str) -> bool:
        async with self.pool.acquire() as conn:
            result = await conn.execute("DELETE FROM queue_items WHERE id = $1", item_id)
            return result == "DELETE 1"

    async def update_item_position(self, item_id: str, position: int | None) -> bool:
        async with self.pool.acquire() as conn:
            result = await conn.execute(
                "UPDATE queue_items SET position = $2 WHERE id = $1",
                item_id,
                position,
            )
            return result == "UPDATE 1"

    async def update_item_positions(
        self, queue_id: str, positions: Mapping[str, int | None]
    ) -> None:
        """Write a batch of positions for one queue in a single transaction."""
        if not positions:
            return
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                await conn.executemany(
                    "UPDATE queue_items SET position = $3 WHERE id = $1 AND queue_id = $2",
                    [(item_id, queue_id, pos) for item_id, pos in positions.items()],
                )

    async def update_item_status(
        self, item_id: str, status: ItemStatus, position: int | None
    ) -> QueueItem | None:
        """Set status and position together. Returns None if the item is gone."""
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                UPDATE queue_items SET status = $2, position = $3
                WHERE id = $1
                RETURNING {_ITEM_COLUMNS}
                """,
                item_id,
                str(status),
                position,
            )
            if not row:
                return None
            return QueueItem(**dict(row))
