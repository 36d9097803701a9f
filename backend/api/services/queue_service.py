"""Queue service: business-logic layer for queue CRUD and membership."""

from __future__ import annotations

import logging
from dataclasses import asdict

from api.services.errors import NotFoundError, ValidationError
from api.services.queue_ordering import QueueOrderingManager
from shared.models.queue import ItemStatus, Queue, QueueItem
from shared.repositories.protocols import QueueItemStore, QueueStore

logger = logging.getLogger(__name__)


def _clean(value: str | None, field: str) -> str | None:
    if value is None:
        return None
    value = value.strip()
    if not value:
        raise ValidationError(f"{field} cannot be empty")
    return value


class QueueService:
    """API-facing queue operations. Position changes go through the ordering manager."""

    def __init__(
        self,
        queues: QueueStore,
        items: QueueItemStore,
        ordering: QueueOrderingManager,
    ) -> None:
        self.queues = queues
        self.items = items
        self.ordering = ordering

    @staticmethod
    def _state(queue: Queue, items: list[QueueItem]) -> dict:
        """Queue metadata plus its items split by status."""
        approved = sorted(
            (i for i in items if i.status == ItemStatus.APPROVED),
            key=lambda i: i.position or 0,
        )
        waiting = [i for i in items if i.status == ItemStatus.WAITING]
        completed = [i for i in items if i.status == ItemStatus.COMPLETED]
        return {
            **asdict(queue),
            "approved": [asdict(i) for i in approved],
            "waiting": [asdict(i) for i in waiting],
            "completed": [asdict(i) for i in completed],
            "total_approved": len(approved),
        }

    async def _require_queue(self, queue_id: str) -> Queue:
        queue = await self.queues.get_queue(queue_id)
        if queue is None:
            raise NotFoundError(f"Queue {queue_id} not found")
        return queue

    async def get_queue_state(self, queue_id: str) -> dict:
        queue = await self._require_queue(queue_id)
        items = await self.items.list_items(queue_id)
        return self._state(queue, items)

    async def list_queues(self) -> list[dict]:
        queues = await self.queues.list_queues()
        result = []
        for queue in queues:
            items = await self.items.list_items(queue.id)
            result.append(self._state(queue, items))
        return result

    # ------------------------------------------------------------------
    # Queue CRUD
    # ------------------------------------------------------------------

    async def create_queue(
        self,
        title: str,
        item_name: str,
        image_url: str | None = None,
        created_by: str | None = None,
    ) -> dict:
        title = _clean(title, "Title")
        item_name = _clean(item_name, "Item name")
        queue = await self.queues.create_queue(title, item_name, image_url or None, created_by)
        logger.info(f"Queue '{queue.title}' created ({queue.id})")
        return self._state(queue, [])

    async def update_queue(
        self,
        queue_id: str,
        *,
        title: str | None = None,
        item_name: str | None = None,
        image_url: str | None = None,
    ) -> dict:
        if title is None and item_name is None and image_url is None:
            raise ValidationError("No fields to update")
        queue = await self.queues.update_queue(
            queue_id,
            title=_clean(title, "Title"),
            item_name=_clean(item_name, "Item name"),
            image_url=image_url,
        )
        if queue is None:
            raise NotFoundError(f"Queue {queue_id} not found")
        return self._state(queue, await self.items.list_items(queue_id))

    async def delete_queue(self, queue_id: str) -> bool:
        deleted = await self.queues.delete_queue(queue_id)
        if deleted:
            logger.info(f"Queue {queue_id} deleted")
        return deleted

    # ------------------------------------------------------------------
    # Membership
    # ------------------------------------------------------------------

    async def request_to_join(self, queue_id: str, name: str, requested_by: str | None) -> dict:
        """Self-service join: the claim waits for master approval."""
        await self._require_queue(queue_id)
        await self.ordering.insert(queue_id, name, ItemStatus.WAITING, requested_by)
        return await self.get_queue_state(queue_id)

    async def add_person(self, queue_id: str, name: str, requested_by: str | None) -> dict:
        """Master add: approved straight away at the back of the line."""
        await self._require_queue(queue_id)
        await self.ordering.insert(queue_id, name, ItemStatus.APPROVED, requested_by)
        return await self.get_queue_state(queue_id)

    async def approve(self, queue_id: str, item_id: str) -> dict:
        await self.ordering.approve(queue_id, item_id)
        return await self.get_queue_state(queue_id)

    async def remove(self, queue_id: str, item_id: str) -> dict:
        """Remove (or reject) a claim. Unknown items leave the queue unchanged."""
        await self.ordering.remove(queue_id, item_id)
        return await self.get_queue_state(queue_id)

    async def complete(self, queue_id: str, item_id: str) -> dict:
        await self.ordering.complete(queue_id, item_id)
        return await self.get_queue_state(queue_id)

    async def move_to_end(self, queue_id: str, item_id: str) -> dict:
        await self.ordering.move_to_end(queue_id, item_id)
        return await self.get_queue_state(queue_id)

    async def reposition(self, queue_id: str, item_id: str, new_position: int) -> dict:
        await self.ordering.reposition(queue_id, item_id, new_position)
        return await self.get_queue_state(queue_id)
