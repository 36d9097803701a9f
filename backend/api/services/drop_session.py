"""In-memory state of a drop run: sessions, slots and queue views."""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Collection
from dataclasses import dataclass, field
from enum import StrEnum

from api.services.queue_ordering import QueueOrderingManager
from shared.models.queue import QueueItem


class SessionState(StrEnum):
    ACTIVE = "active"
    EXHAUSTED = "exhausted"


@dataclass
class DropSlot:
    """One seat of a session and the queue item currently occupying it.

    ``seat`` stays the same for the life of the session; ``slot_id`` is
    regenerated whenever a skip puts a different item in the seat.
    """

    slot_id: str
    seat: int
    item_id: str
    name: str
    position: int | None

    @classmethod
    def for_item(cls, seat: int, item: QueueItem) -> DropSlot:
        return cls(
            slot_id=uuid.uuid4().hex,
            seat=seat,
            item_id=item.id,
            name=item.name,
            position=item.position,
        )


@dataclass(frozen=True)
class PoolSnapshot:
    """Approved items of a queue as they were when the session started."""

    items: tuple[QueueItem, ...]

    def filtered(self, eligible: Collection[str]) -> list[QueueItem]:
        return [item for item in self.items if item.name in eligible]

    def __len__(self) -> int:
        return len(self.items)


@dataclass(frozen=True)
class LiveQueueView:
    """A fresh read of a queue's approved items, taken for one decision."""

    queue_id: str
    items: tuple[QueueItem, ...]

    @classmethod
    async def read(cls, queue_id: str, ordering: QueueOrderingManager) -> LiveQueueView:
        return cls(queue_id, tuple(await ordering.list_approved(queue_id)))

    def first_for(self, name: str) -> QueueItem | None:
        """The front-most approved item claimed under *name*."""
        return next((item for item in self.items if item.name == name), None)

    def by_id(self) -> dict[str, QueueItem]:
        return {item.id: item for item in self.items}


@dataclass
class DropSession:
    """Draw state for one queue in a run."""

    queue_id: str
    drop_event_id: str
    item_name: str
    image_url: str | None
    remaining_pool: PoolSnapshot
    eligible: tuple[str, ...]
    total_count: int
    processed_count: int = 0
    current_slots: list[DropSlot] = field(default_factory=list)
    needs_reconcile: bool = False
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False, compare=False)

    @property
    def state(self) -> SessionState:
        return SessionState.ACTIVE if self.current_slots else SessionState.EXHAUSTED

    def find_slot(self, slot_id: str) -> DropSlot | None:
        return next((s for s in self.current_slots if s.slot_id == slot_id), None)

    def rotation_after(self, name: str) -> list[str]:
        """Eligible names in rotation order after *name*, ending with *name* itself.

        A name outside the eligible list starts the rotation from the top.
        """
        count = len(self.eligible)
        start = self.eligible.index(name) if name in self.eligible else -1
        return [self.eligible[(start + step) % count] for step in range(1, count + 1)]

    def to_dict(self) -> dict:
        return {
            "queue_id": self.queue_id,
            "drop_event_id": self.drop_event_id,
            "item_name": self.item_name,
            "image_url": self.image_url,
            "state": str(self.state),
            "total_count": self.total_count,
            "processed_count": self.processed_count,
            "needs_reconcile": self.needs_reconcile,
            "current_slots": [
                {
                    "slot_id": s.slot_id,
                    "seat": s.seat,
                    "item_id": s.item_id,
                    "name": s.name,
                    "position": s.position,
                }
                for s in self.current_slots
            ],
        }
