"""Data models for drop_events and drop_participants tables."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum


class DropAction(StrEnum):
    ACCEPT = "accept"
    SKIP = "skip"
    DECLINE = "decline"

    @property
    def is_terminal(self) -> bool:
        """Accept and decline retire the seat; skip keeps it open."""
        return self is not DropAction.SKIP


@dataclass
class DropEvent:
    """Audit anchor for one queue's draw in a run."""

    id: str
    queue_id: str
    drop_count: int
    created_by: str | None = None
    created_at: datetime | None = None


@dataclass
class DropParticipant:
    """One accept/skip/decline decision. Never updated after insert."""

    id: str
    drop_event_id: str
    queue_item_id: str | None
    name: str
    action: DropAction
    created_at: datetime | None = None

    def __post_init__(self) -> None:
        self.action = DropAction(self.action)
