"""Data models for queues and queue_items tables."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum


class ItemStatus(StrEnum):
    WAITING = "waiting"
    APPROVED = "approved"
    COMPLETED = "completed"


@dataclass
class Queue:
    """Queue record (one distributable item type)."""

    id: str
    title: str
    item_name: str | None = None
    image_url: str | None = None
    created_by: str | None = None
    created_at: datetime | None = None


@dataclass
class QueueItem:
    """One person's claim in one queue.

    ``position`` is only set for approved items; waiting and completed
    items sit outside the numbering.
    """

    id: str
    queue_id: str
    name: str
    position: int | None
    status: ItemStatus
    requested_by: str | None = None
    created_at: datetime | None = None

    def __post_init__(self) -> None:
        self.status = ItemStatus(self.status)

    @property
    def is_approved(self) -> bool:
        return self.status == ItemStatus.APPROVED
