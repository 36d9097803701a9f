"""Drop engine: runs draw sessions over queues.

A run holds one session per selected queue. Each session fills its seats
by cycling the eligible members of the queue (``pool[i % len(pool)]``),
then the operator decides every seat:

    accept   seat retired, counts as processed
    decline  seat retired, counts as processed
    skip     seat refilled with the next eligible name in rotation,
             not counted as processed

Every decision writes a participant record first and then rotates the
decided item from the front of its queue to the back (a no-op unless the
item is at position 1).
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from api.services.drop_results import DropResult, DropResultsLedger
from api.services.drop_session import (
    DropSession,
    DropSlot,
    LiveQueueView,
    PoolSnapshot,
    SessionState,
)
from api.services.errors import PartialWriteError, ValidationError
from api.services.queue_ordering import QueueOrderingManager
from shared.models.drop import DropAction, DropParticipant
from shared.repositories.protocols import DropStore, QueueStore

logger = logging.getLogger(__name__)


@dataclass
class Decision:
    """Outcome of one accept / skip / decline."""

    action: DropAction
    slot: DropSlot
    record: DropParticipant
    session: DropSession
    replacement: DropSlot | None = None

    def to_dict(self) -> dict:
        return {
            "action": str(self.action),
            "slot_id": self.slot.slot_id,
            "name": self.slot.name,
            "replacement": self.replacement.name if self.replacement else None,
            "session": self.session.to_dict(),
        }


class DropEngine:
    """Owns the sessions of the current run and the picked-up / missed lists."""

    def __init__(
        self,
        queues: QueueStore,
        drops: DropStore,
        ordering: QueueOrderingManager,
        *,
        max_drop_count: int = 5,
        history_hours: int = 24,
    ) -> None:
        self.queues = queues
        self.drops = drops
        self.ordering = ordering
        self.max_drop_count = max_drop_count
        self.results = DropResultsLedger(queues, drops, history_hours)
        self.sessions: dict[str, DropSession] = {}
        self.eligible: tuple[str, ...] = ()
        self._run_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Run lifecycle
    # ------------------------------------------------------------------

    def _validate(
        self, selections: Mapping[str, int], eligible: Iterable[str]
    ) -> tuple[dict[str, int], tuple[str, ...]]:
        counts = {queue_id: int(count) for queue_id, count in selections.items() if count}
        counts = {queue_id: count for queue_id, count in counts.items() if count > 0}
        if not counts:
            raise ValidationError("Select at least one queue with a drop count")
        over = [queue_id for queue_id, count in counts.items() if count > self.max_drop_count]
        if over:
            raise ValidationError(f"Drop count must be between 1 and {self.max_drop_count}")

        names = tuple(dict.fromkeys(n.strip() for n in eligible if n and n.strip()))
        if not names:
            raise ValidationError("Select at least one participant")
        return counts, names

    async def start_drops(
        self,
        selections: Mapping[str, int],
        eligible: Iterable[str],
        created_by: str | None = None,
    ) -> dict:
        """Start a run over ``{queue_id: count}`` restricted to *eligible* names.

        Queues that no longer exist or have no eligible approved members are
        skipped and reported. An active run is replaced.
        """
        counts, names = self._validate(selections, eligible)
        allowed = set(names)

        async with self._run_lock:
            if self.has_active_drops():
                logger.warning("Starting a new drop run while the previous one is still active")

            sessions: dict[str, DropSession] = {}
            skipped: list[dict] = []
            for queue_id, count in counts.items():
                queue = await self.queues.get_queue(queue_id)
                if queue is None:
                    logger.warning(f"Drop skipped for queue {queue_id}: queue not found")
                    skipped.append({"queue_id": queue_id, "reason": "queue_not_found"})
                    continue

                snapshot = PoolSnapshot(tuple(await self.ordering.list_approved(queue_id)))
                pool = snapshot.filtered(allowed)
                if not pool:
                    logger.warning(f"Drop skipped for '{queue.title}': no eligible approved items")
                    skipped.append({"queue_id": queue_id, "reason": "no_eligible_items"})
                    continue
                if len(pool) < count:
                    logger.info(
                        f"'{queue.title}': {count} drops for {len(pool)} eligible, "
                        "some names will hold more than one slot"
                    )

                event = await self.drops.insert_drop_event(queue_id, count, created_by)
                session = DropSession(
                    queue_id=queue_id,
                    drop_event_id=event.id,
                    item_name=queue.item_name or queue.title,
                    image_url=queue.image_url,
                    remaining_pool=snapshot,
                    eligible=names,
                    total_count=count,
                    current_slots=[
                        DropSlot.for_item(seat, pool[seat % len(pool)]) for seat in range(count)
                    ],
                )
                self._replace_ineligible(session, allowed)
                sessions[queue_id] = session

            self.sessions = sessions
            self.eligible = names

        logger.info(
            f"Drop run started: {len(sessions)} queue(s), {len(names)} eligible, "
            f"{len(skipped)} skipped"
        )
        return {
            "sessions": [s.to_dict() for s in sessions.values()],
            "skipped": skipped,
            "progress": self.get_progress(),
        }

    @staticmethod
    def _replace_ineligible(session: DropSession, allowed: set[str]) -> None:
        """Swap any non-eligible occupant for the next unassigned eligible item."""
        assigned = {slot.item_id for slot in session.current_slots}
        kept: list[DropSlot] = []
        for slot in session.current_slots:
            if slot.name in allowed:
                kept.append(slot)
                continue
            candidate = next(
                (
                    item
                    for item in session.remaining_pool.items
                    if item.name in allowed and item.id not in assigned
                ),
                None,
            )
            if candidate is None:
                logger.warning(f"Dropping slot of non-eligible '{slot.name}': no replacement")
                continue
            assigned.add(candidate.id)
            kept.append(DropSlot.for_item(slot.seat, candidate))
        session.current_slots = kept

    def reset_drops(self) -> None:
        """Forget the current run. Audit rows and result lists are kept."""
        self.sessions = {}
        self.eligible = ()
        logger.info("Drop run reset")

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    async def decide(self, queue_id: str, slot_id: str, action: DropAction | str) -> Decision | None:
        """Apply accept / skip / decline to a slot.

        Returns None (and logs a warning) when the session or slot no longer
        exists. Raises PartialWriteError if the queue rotation failed after
        the participant record was written.
        """
        try:
            action = DropAction(action)
        except ValueError:
            raise ValidationError(f"Unknown drop action: {action}") from None

        session = self.sessions.get(queue_id)
        if session is None:
            logger.warning(f"No active drop for queue {queue_id}")
            return None

        async with session.lock:
            await self._reconcile(session)
            slot = session.find_slot(slot_id)
            if slot is None:
                logger.warning(f"Slot {slot_id} not found in drop for queue {queue_id}")
                return None

            record = await self.drops.insert_participant(
                session.drop_event_id, slot.item_id, slot.name, action
            )
            self.results.record(record, session.item_name, session.image_url)

            replacement: DropSlot | None = None
            try:
                await self.ordering.move_to_end(queue_id, slot.item_id)
                if action == DropAction.SKIP:
                    replacement = await self._find_replacement(session, slot)
            except Exception as e:
                session.needs_reconcile = True
                logger.exception(f"Drop {action} of '{slot.name}' only partly applied")
                raise PartialWriteError(
                    f"{action} of '{slot.name}' was recorded but the queue was not updated"
                ) from e

            index = session.current_slots.index(slot)
            if action.is_terminal:
                session.current_slots.pop(index)
                session.processed_count += 1
            elif replacement is not None:
                session.current_slots[index] = replacement
            else:
                session.current_slots.pop(index)

        logger.info(
            f"Drop '{session.item_name}': {action} '{slot.name}'"
            + (f" -> '{replacement.name}'" if replacement else "")
            + f" ({session.processed_count}/{session.total_count})"
        )
        if session.state == SessionState.EXHAUSTED:
            logger.info(f"Drop '{session.item_name}' finished")
        return Decision(action, slot, record, session, replacement)

    async def _find_replacement(self, session: DropSession, slot: DropSlot) -> DropSlot | None:
        """Next eligible name after the skipped one that still holds an approved item."""
        live = await LiveQueueView.read(session.queue_id, self.ordering)
        for name in session.rotation_after(slot.name):
            item = live.first_for(name)
            if item is not None:
                return DropSlot.for_item(slot.seat, item)
        logger.info(f"No replacement for skipped '{slot.name}', seat {slot.seat} closed")
        return None

    async def _reconcile(self, session: DropSession) -> None:
        """Align slots with the live queue: refresh positions, drop vanished items."""
        if session.needs_reconcile:
            logger.warning(f"Resynchronizing drop for queue {session.queue_id} after failed write")
        live = (await LiveQueueView.read(session.queue_id, self.ordering)).by_id()
        kept: list[DropSlot] = []
        for slot in session.current_slots:
            item = live.get(slot.item_id)
            if item is None:
                logger.warning(f"'{slot.name}' is no longer approved, slot {slot.slot_id} dropped")
                continue
            slot.position = item.position
            slot.name = item.name
            kept.append(slot)
        session.current_slots = kept
        session.needs_reconcile = False

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def get_progress(self) -> float:
        """Percentage of requested seats that reached accept or decline."""
        total = sum(s.total_count for s in self.sessions.values())
        if total == 0:
            return 0
        processed = sum(s.processed_count for s in self.sessions.values())
        return processed / total * 100

    def has_active_drops(self) -> bool:
        return any(s.state == SessionState.ACTIVE for s in self.sessions.values())

    def is_complete(self) -> bool:
        return bool(self.sessions) and not self.has_active_drops()

    def get_active_slots(self) -> dict[str, list[DropSlot]]:
        return {
            queue_id: list(session.current_slots)
            for queue_id, session in self.sessions.items()
            if session.state == SessionState.ACTIVE
        }

    def get_state(self) -> dict:
        return {
            "eligible": list(self.eligible),
            "sessions": [s.to_dict() for s in self.sessions.values()],
            "progress": self.get_progress(),
            "active": self.has_active_drops(),
            "complete": self.is_complete(),
        }

    def copy_drop_results(self, queue_id: str) -> str | None:
        """``"<item>: name, name"`` for the names currently holding slots."""
        session = self.sessions.get(queue_id)
        if session is None or not session.current_slots:
            return None
        return f"{session.item_name}: {', '.join(s.name for s in session.current_slots)}"

    # ------------------------------------------------------------------
    # Result lists
    # ------------------------------------------------------------------

    def get_picked_up(self) -> list[DropResult]:
        return list(self.results.picked_up)

    def get_missed(self) -> list[DropResult]:
        return list(self.results.missed)

    async def clear_picked_up(self) -> int:
        return await self.results.clear_picked_up()

    async def clear_missed(self) -> int:
        return await self.results.clear_missed()

    async def load_recent(self) -> None:
        await self.results.load_recent()
