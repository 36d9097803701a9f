"""Queue ordering: keeps approved positions dense (1..N) per queue.

Every operation reads the approved items, computes the complete new
position map in memory and hands it to the store in one write (a batch,
or a single-row update when only one item moves).
Operations on the same queue are serialized with a per-queue lock.

If a previous write left a queue non-dense (for example the delete of a
``remove`` went through but the follow-up shift did not), the next
operation renumbers the queue in its current order before doing anything
else.
"""

from __future__ import annotations

import asyncio
import logging

from api.services.errors import NotFoundError, ValidationError
from shared.models.queue import ItemStatus, QueueItem
from shared.repositories.protocols import QueueItemStore

logger = logging.getLogger(__name__)


def _shift_after(approved: list[QueueItem], removed: QueueItem) -> dict[str, int | None]:
    """Positions after closing the gap left by *removed*."""
    return {
        item.id: item.position - 1
        for item in approved
        if item.id != removed.id and item.position is not None and item.position > removed.position
    }


class QueueOrderingManager:
    """Insert / approve / remove / complete / move-to-end / reposition."""

    def __init__(self, items: QueueItemStore) -> None:
        self.items = items
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock(self, queue_id: str) -> asyncio.Lock:
        lock = self._locks.get(queue_id)
        if lock is None:
            lock = self._locks[queue_id] = asyncio.Lock()
        return lock

    async def _load(self, queue_id: str) -> list[QueueItem]:
        """Approved items in order, renumbered first if they are not dense."""
        approved = await self.items.list_approved_items(queue_id)
        expected = list(range(1, len(approved) + 1))
        if [item.position for item in approved] == expected:
            return approved

        logger.warning(f"Queue {queue_id} positions out of sequence, renumbering")
        changes = {}
        for position, item in enumerate(approved, start=1):
            if item.position != position:
                changes[item.id] = position
                item.position = position
        await self._write(queue_id, changes)
        return approved

    async def _write(self, queue_id: str, changes: dict[str, int | None]) -> None:
        """Persist a position map; a single change skips the batch transaction."""
        if len(changes) == 1:
            ((item_id, position),) = changes.items()
            await self.items.update_item_position(item_id, position)
        elif changes:
            await self.items.update_item_positions(queue_id, changes)

    async def _find(self, queue_id: str, item_id: str) -> QueueItem | None:
        item = await self.items.get_item(item_id)
        if item is None or item.queue_id != queue_id:
            return None
        return item

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def list_approved(self, queue_id: str) -> list[QueueItem]:
        """Authoritative approved items of a queue, ordered by position."""
        async with self._lock(queue_id):
            return await self._load(queue_id)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def insert(
        self,
        queue_id: str,
        name: str,
        status: ItemStatus = ItemStatus.APPROVED,
        requested_by: str | None = None,
    ) -> QueueItem:
        """Add a claim. Approved claims go to the back of the line."""
        name = name.strip()
        if not name:
            raise ValidationError("Name cannot be empty")
        status = ItemStatus(status)
        if status == ItemStatus.COMPLETED:
            raise ValidationError("New items must be waiting or approved")

        if status == ItemStatus.WAITING:
            return await self.items.insert_item(queue_id, name, status, None, requested_by)

        async with self._lock(queue_id):
            approved = await self._load(queue_id)
            item = await self.items.insert_item(
                queue_id, name, status, len(approved) + 1, requested_by
            )
        logger.info(f"Queue {queue_id}: added '{name}' at position {item.position}")
        return item

    async def approve(self, queue_id: str, item_id: str) -> QueueItem:
        """Approve a waiting claim and give it the next free position."""
        async with self._lock(queue_id):
            item = await self._find(queue_id, item_id)
            if item is None:
                raise NotFoundError(f"Queue item {item_id} not found")
            if item.status == ItemStatus.APPROVED:
                return item
            if item.status == ItemStatus.COMPLETED:
                raise ValidationError("Completed items cannot be approved")

            approved = await self._load(queue_id)
            updated = await self.items.update_item_status(
                item_id, ItemStatus.APPROVED, len(approved) + 1
            )
            if updated is None:
                raise NotFoundError(f"Queue item {item_id} not found")
        logger.info(f"Queue {queue_id}: approved '{updated.name}' at position {updated.position}")
        return updated

    async def remove(self, queue_id: str, item_id: str) -> bool:
        """Delete a claim and close the gap. Unknown items are a no-op."""
        async with self._lock(queue_id):
            item = await self._find(queue_id, item_id)
            if item is None:
                logger.warning(f"Queue {queue_id}: remove of unknown item {item_id} ignored")
                return False

            approved = await self._load(queue_id) if item.is_approved else []
            # Re-read so the position is the one after any renumbering
            item = next((a for a in approved if a.id == item_id), item)
            if not await self.items.delete_item(item_id):
                return False
            if item.is_approved:
                await self._write(queue_id, _shift_after(approved, item))
        logger.info(f"Queue {queue_id}: removed '{item.name}'")
        return True

    async def complete(self, queue_id: str, item_id: str) -> QueueItem:
        """Mark an approved claim completed and close the gap."""
        async with self._lock(queue_id):
            item = await self._find(queue_id, item_id)
            if item is None:
                raise NotFoundError(f"Queue item {item_id} not found")
            if not item.is_approved:
                raise ValidationError("Only approved items can be completed")

            approved = await self._load(queue_id)
            item = next((a for a in approved if a.id == item_id), None)
            if item is None:
                raise NotFoundError(f"Queue item {item_id} not found")
            updated = await self.items.update_item_status(item_id, ItemStatus.COMPLETED, None)
            if updated is None:
                raise NotFoundError(f"Queue item {item_id} not found")
            await self._write(queue_id, _shift_after(approved, item))
        logger.info(f"Queue {queue_id}: completed '{updated.name}'")
        return updated

    async def move_to_end(self, queue_id: str, item_id: str) -> bool:
        """Rotate the front of the line to the back.

        Only the item at position 1 moves; for any other item this is a
        no-op and returns False.
        """
        async with self._lock(queue_id):
            approved = await self._load(queue_id)
            item = next((a for a in approved if a.id == item_id), None)
            if item is None:
                logger.warning(f"Queue {queue_id}: move_to_end of unknown item {item_id} ignored")
                return False
            if item.position != 1:
                logger.debug(
                    f"Queue {queue_id}: '{item.name}' is at position {item.position}, not moved"
                )
                return False

            max_position = len(approved)
            changes: dict[str, int | None] = {
                other.id: other.position - 1 for other in approved if other.id != item_id
            }
            changes[item_id] = max_position
            await self._write(queue_id, changes)
        logger.info(f"Queue {queue_id}: moved '{item.name}' to position {max_position}")
        return True

    async def reposition(self, queue_id: str, item_id: str, new_position: int) -> list[QueueItem]:
        """Move an approved item to *new_position*, shifting the items in between."""
        async with self._lock(queue_id):
            approved = await self._load(queue_id)
            total = len(approved)
            if not 1 <= new_position <= total:
                if total == 0:
                    raise ValidationError("Queue has no approved items")
                raise ValidationError(f"Position must be between 1 and {total}")

            item = next((a for a in approved if a.id == item_id), None)
            if item is None:
                raise NotFoundError(f"Approved queue item {item_id} not found")

            ordered = [a for a in approved if a.id != item_id]
            ordered.insert(new_position - 1, item)
            changes = {}
            for position, entry in enumerate(ordered, start=1):
                if entry.position != position:
                    changes[entry.id] = position
                    entry.position = position
            await self._write(queue_id, changes)
        logger.info(f"Queue {queue_id}: repositioned '{item.name}' to {new_position}")
        return ordered
