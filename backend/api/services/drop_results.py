"""Picked-up / missed lists built from drop participant records."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import UTC, datetime, timedelta

from shared.models.drop import DropAction, DropEvent, DropParticipant
from shared.repositories.protocols import DropStore, QueueStore

logger = logging.getLogger(__name__)

UNKNOWN_ITEM = "Unknown Item"

_MISSED_ACTIONS = (DropAction.SKIP, DropAction.DECLINE)


@dataclass
class DropResult:
    """A participant record with the display data of its queue."""

    participant: DropParticipant
    item_name: str
    image_url: str | None = None

    def to_dict(self) -> dict:
        return {**asdict(self.participant), "item_name": self.item_name, "image_url": self.image_url}


class DropResultsLedger:
    """Accumulates accept rows (picked up) and skip/decline rows (missed).

    Both lists are newest first. They survive ``reset_drops``; they are
    emptied only by the clear operations, which also delete the matching
    rows inside the history window.
    """

    def __init__(self, queues: QueueStore, drops: DropStore, history_hours: int = 24) -> None:
        self.queues = queues
        self.drops = drops
        self.history = timedelta(hours=history_hours)
        self.picked_up: list[DropResult] = []
        self.missed: list[DropResult] = []

    def window_start(self) -> datetime:
        return datetime.now(UTC) - self.history

    def record(
        self, participant: DropParticipant, item_name: str | None, image_url: str | None
    ) -> None:
        result = DropResult(participant, item_name or UNKNOWN_ITEM, image_url)
        if participant.action == DropAction.ACCEPT:
            self.picked_up.insert(0, result)
        else:
            self.missed.insert(0, result)

    async def load_recent(self, since: datetime | None = None) -> None:
        """Rebuild both lists from the store, e.g. after a restart."""
        since = since or self.window_start()
        events, participants = await self.drops.list_recent_drop_events_and_participants(since)
        events_by_id: dict[str, DropEvent] = {e.id: e for e in events}

        display: dict[str, tuple[str, str | None]] = {}
        for queue_id in {e.queue_id for e in events}:
            queue = await self.queues.get_queue(queue_id)
            if queue is not None:
                display[queue_id] = (queue.item_name or UNKNOWN_ITEM, queue.image_url)

        self.picked_up = []
        self.missed = []
        for participant in participants:
            event = events_by_id.get(participant.drop_event_id)
            queue_id = event.queue_id if event else ""
            item_name, image_url = display.get(queue_id, (UNKNOWN_ITEM, None))
            self.record(participant, item_name, image_url)

        logger.info(
            f"Loaded drop results since {since.isoformat()}: "
            f"{len(self.picked_up)} picked up, {len(self.missed)} missed"
        )

    async def _recent_event_ids(self) -> list[str]:
        events, _ = await self.drops.list_recent_drop_events_and_participants(self.window_start())
        return [e.id for e in events]

    async def clear_picked_up(self) -> int:
        deleted = await self.drops.delete_participants(
            await self._recent_event_ids(), [DropAction.ACCEPT]
        )
        self.picked_up = []
        logger.info(f"Cleared picked-up list ({deleted} rows)")
        return deleted

    async def clear_missed(self) -> int:
        deleted = await self.drops.delete_participants(
            await self._recent_event_ids(), _MISSED_ACTIONS
        )
        self.missed = []
        logger.info(f"Cleared missed list ({deleted} rows)")
        return deleted
