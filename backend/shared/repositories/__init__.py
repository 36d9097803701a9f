"""Shared repository layer for the guild queue backend."""

from .drop import DropRepository
from .queue import QueueItemRepository, QueueRepository

__all__ = [
    "DropRepository",
    "QueueItemRepository",
    "QueueRepository",
]
