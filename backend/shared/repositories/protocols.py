"""Store interfaces consumed by the queue and drop services.

The asyncpg repositories in this package implement them; tests supply
in-memory versions.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import Protocol

from shared.models.drop import DropAction, DropEvent, DropParticipant
from shared.models.queue import ItemStatus, Queue, QueueItem


class QueueStore(Protocol):
    async def list_queues(self) -> list[Queue]: ...

    async def get_queue(self, queue_id: str) -> Queue | None: ...

    async def create_queue(
        self,
        title: str,
        item_name: str,
        image_url: str | None,
        created_by: str | None,
    ) -> Queue: ...

    async def update_queue(
        self,
        queue_id: str,
        *,
        title: str | None = None,
        item_name: str | None = None,
        image_url: str | None = None,
    ) -> Queue | None: ...

    async def delete_queue(self, queue_id: str) -> bool: ...


class QueueItemStore(Protocol):
    async def list_items(self, queue_id: str) -> list[QueueItem]: ...

    async def list_approved_items(self, queue_id: str) -> list[QueueItem]: ...

    async def get_item(self, item_id: str) -> QueueItem | None: ...

    async def insert_item(
        self,
        queue_id: str,
        name: str,
        status: ItemStatus,
        position: int | None,
        requested_by: str | None,
    ) -> QueueItem: ...

    async def delete_item(self, item_id: str) -> bool: ...

    async def update_item_position(self, item_id: str, position: int | None) -> bool: ...

    async def update_item_positions(
        self, queue_id: str, positions: Mapping[str, int | None]
    ) -> None: ...

    async def update_item_status(
        self, item_id: str, status: ItemStatus, position: int | None
    ) -> QueueItem | None: ...


class DropStore(Protocol):
    async def insert_drop_event(
        self, queue_id: str, drop_count: int, created_by: str | None
    ) -> DropEvent: ...

    async def insert_participant(
        self,
        drop_event_id: str,
        queue_item_id: str,
        name: str,
        action: DropAction,
    ) -> DropParticipant: ...

    async def list_recent_drop_events_and_participants(
        self, since: datetime
    ) -> tuple[list[DropEvent], list[DropParticipant]]: ...

    async def delete_participants(
        self, drop_event_ids: Iterable[str], actions: Iterable[DropAction]
    ) -> int: ...
