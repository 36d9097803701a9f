"""Shared data models for the guild queue backend."""

from .drop import DropAction, DropEvent, DropParticipant
from .queue import ItemStatus, Queue, QueueItem

__all__ = [
    "DropAction",
    "DropEvent",
    "DropParticipant",
    "ItemStatus",
    "Queue",
    "QueueItem",
]
