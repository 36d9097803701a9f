"""Repository for drop_events and drop_participants tables."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime

import asyncpg

from shared.models.drop import DropAction, DropEvent, DropParticipant

logger = logging.getLogger(__name__)

_EVENT_COLUMNS = (
    "id::text AS id, queue_id::text AS queue_id, drop_count, "
    "created_by::text AS created_by, created_at"
)

_PARTICIPANT_COLUMNS = (
    "id::text AS id, drop_event_id::text AS drop_event_id, "
    "queue_item_id::text AS queue_item_id, name, action, created_at"
)


class DropRepository:
    """Pure SQL operations for drop audit rows. Participants are insert-only."""

    def __init__(self, pool: asyncpg.Pool) -> None:
        self.pool = pool

    async def insert_drop_event(
        self, queue_id: str, drop_count: int, created_by: str | None
    ) -> DropEvent:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                INSERT INTO drop_events (queue_id, drop_count, created_by)
                VALUES ($1, $2, $3)
                RETURNING {_EVENT_COLUMNS}
                """,
                queue_id,
                drop_count,
                created_by,
            )
            return DropEvent(**dict(row))

    async def insert_participant(
        self,
        drop_event_id: str,
        queue_item_id: str,
        name: str,
        action: DropAction,
    ) -> DropParticipant:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                INSERT INTO drop_participants (drop_event_id, queue_item_id, name, action)
                VALUES ($1, $2, $3, $4)
                RETURNING {_PARTICIPANT_COLUMNS}
                """,
                drop_event_id,
                queue_item_id,
                name,
                str(action),
            )
            return DropParticipant(**dict(row))

    async def list_recent_drop_events_and_participants(
        self, since: datetime
    ) -> tuple[list[DropEvent], list[DropParticipant]]:
        """Drop events created since *since* and their participants, oldest first."""
        async with self.pool.acquire() as conn:
            event_rows = await conn.fetch(
                f"SELECT {_EVENT_COLUMNS} FROM drop_events "
                "WHERE created_at >= $1 ORDER BY created_at ASC",
                since,
            )
            events = [DropEvent(**dict(row)) for row in event_rows]
            if not events:
                return [], []

            participant_rows = await conn.fetch(
                f"SELECT {_PARTICIPANT_COLUMNS} FROM drop_participants "
                "WHERE drop_event_id = ANY($1::uuid[]) ORDER BY created_at ASC",
                [e.id for e in events],
            )
            return events, [DropParticipant(**dict(row)) for row in participant_rows]

    async def delete_participants(
        self, drop_event_ids: Iterable[str], actions: Iterable[DropAction]
    ) -> int:
        """Delete participant rows of the given events with the given actions."""
        event_ids = list(drop_event_ids)
        action_values = [str(a) for a in actions]
        if not event_ids or not action_values:
            return 0
        async with self.pool.acquire() as conn:
            result = await conn.execute(
                "DELETE FROM drop_participants "
                "WHERE drop_event_id = ANY($1::uuid[]) AND action = ANY($2::text[])",
                event_ids,
                action_values,
            )
            # result is like "DELETE N"
            return int(result.split()[-1])
