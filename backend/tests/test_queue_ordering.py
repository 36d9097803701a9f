import random

import pytest

from api.services import NotFoundError, QueueOrderingManager, ValidationError
from shared.models.queue import ItemStatus

from conftest import InMemoryStore, seed_queue


def _assert_dense(store: InMemoryStore, queue_id: str) -> None:
    positions = store.positions(queue_id)
    assert positions == list(range(1, len(positions) + 1))


@pytest.mark.asyncio
async def test_move_to_end_rotates_front_item_to_back(store, ordering):
    queue = await seed_queue(store, ["A", "B", "C", "D"])
    ids = store.ids_by_name(queue.id)

    moved = await ordering.move_to_end(queue.id, ids["A"])

    assert moved is True
    assert store.approved_names(queue.id) == ["B", "C", "D", "A"]
    assert store.items[ids["A"]].position == 4
    assert store.items[ids["B"]].position == 1


@pytest.mark.asyncio
async def test_move_to_end_ignores_items_not_at_front(store, ordering):
    queue = await seed_queue(store, ["A", "B", "C"])
    ids = store.ids_by_name(queue.id)

    moved = await ordering.move_to_end(queue.id, ids["B"])

    assert moved is False
    assert store.approved_names(queue.id) == ["A", "B", "C"]
    assert store.position_writes == 0


@pytest.mark.asyncio
async def test_move_to_end_of_unknown_item_is_a_no_op(store, ordering):
    queue = await seed_queue(store, ["A", "B"])

    assert await ordering.move_to_end(queue.id, "missing") is False
    assert store.approved_names(queue.id) == ["A", "B"]


@pytest.mark.asyncio
async def test_insert_approved_goes_to_back(store, ordering):
    queue = await seed_queue(store, ["A", "B"])

    item = await ordering.insert(queue.id, "  C  ", ItemStatus.APPROVED, "master-1")

    assert item.position == 3
    assert item.name == "C"
    assert store.approved_names(queue.id) == ["A", "B", "C"]


@pytest.mark.asyncio
async def test_insert_into_empty_queue_starts_at_one(store, ordering):
    queue = await seed_queue(store, [])

    item = await ordering.insert(queue.id, "Solo")

    assert item.position == 1


@pytest.mark.asyncio
async def test_waiting_items_have_no_position_until_approved(store, ordering):
    queue = await seed_queue(store, ["A", "B"])

    waiting = await ordering.insert(queue.id, "W", ItemStatus.WAITING, "user-1")
    assert waiting.position is None
    assert store.positions(queue.id) == [1, 2]

    await ordering.insert(queue.id, "C")
    approved = await ordering.approve(queue.id, waiting.id)

    assert approved.status == ItemStatus.APPROVED
    assert approved.position == 4
    assert store.approved_names(queue.id) == ["A", "B", "C", "W"]


@pytest.mark.asyncio
async def test_approve_twice_keeps_position(store, ordering):
    queue = await seed_queue(store, ["A"])
    waiting = await ordering.insert(queue.id, "W", ItemStatus.WAITING)

    first = await ordering.approve(queue.id, waiting.id)
    second = await ordering.approve(queue.id, waiting.id)

    assert first.position == second.position == 2


@pytest.mark.asyncio
async def test_approve_unknown_item_raises(store, ordering):
    queue = await seed_queue(store, ["A"])

    with pytest.raises(NotFoundError):
        await ordering.approve(queue.id, "missing")


@pytest.mark.asyncio
async def test_insert_rejects_blank_name_and_completed_status(store, ordering):
    queue = await seed_queue(store, [])

    with pytest.raises(ValidationError):
        await ordering.insert(queue.id, "   ")
    with pytest.raises(ValidationError):
        await ordering.insert(queue.id, "X", ItemStatus.COMPLETED)


@pytest.mark.asyncio
async def test_remove_closes_the_gap(store, ordering):
    queue = await seed_queue(store, ["A", "B", "C", "D"])
    ids = store.ids_by_name(queue.id)

    assert await ordering.remove(queue.id, ids["B"]) is True

    assert store.approved_names(queue.id) == ["A", "C", "D"]
    assert store.items[ids["A"]].position == 1
    assert store.items[ids["C"]].position == 2
    assert store.items[ids["D"]].position == 3


@pytest.mark.asyncio
async def test_remove_unknown_item_is_silent(store, ordering):
    queue = await seed_queue(store, ["A", "B"])

    assert await ordering.remove(queue.id, "missing") is False
    assert store.approved_names(queue.id) == ["A", "B"]


@pytest.mark.asyncio
async def test_remove_item_of_other_queue_is_ignored(store, ordering):
    first = await seed_queue(store, ["A"])
    second = await seed_queue(store, ["B"], title="Other")
    b_id = store.ids_by_name(second.id)["B"]

    assert await ordering.remove(first.id, b_id) is False
    assert store.approved_names(second.id) == ["B"]


@pytest.mark.asyncio
async def test_rejecting_waiting_item_leaves_positions(store, ordering):
    queue = await seed_queue(store, ["A", "B"])
    waiting = await ordering.insert(queue.id, "W", ItemStatus.WAITING)

    assert await ordering.remove(queue.id, waiting.id) is True
    assert store.positions(queue.id) == [1, 2]
    assert waiting.id not in store.items


@pytest.mark.asyncio
async def test_complete_takes_item_out_of_numbering(store, ordering):
    queue = await seed_queue(store, ["A", "B", "C"])
    ids = store.ids_by_name(queue.id)

    done = await ordering.complete(queue.id, ids["A"])

    assert done.status == ItemStatus.COMPLETED
    assert done.position is None
    assert store.approved_names(queue.id) == ["B", "C"]
    _assert_dense(store, queue.id)


@pytest.mark.asyncio
async def test_complete_requires_approved_item(store, ordering):
    queue = await seed_queue(store, [])
    waiting = await ordering.insert(queue.id, "W", ItemStatus.WAITING)

    with pytest.raises(ValidationError):
        await ordering.complete(queue.id, waiting.id)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("name", "target", "expected"),
    [
        ("D", 1, ["D", "A", "B", "C"]),
        ("A", 3, ["B", "C", "A", "D"]),
        ("B", 4, ["A", "C", "D", "B"]),
        ("C", 3, ["A", "B", "C", "D"]),
    ],
)
async def test_reposition_shifts_items_in_between(store, ordering, name, target, expected):
    queue = await seed_queue(store, ["A", "B", "C", "D"])
    ids = store.ids_by_name(queue.id)

    ordered = await ordering.reposition(queue.id, ids[name], target)

    assert [i.name for i in ordered] == expected
    assert store.approved_names(queue.id) == expected
    _assert_dense(store, queue.id)


@pytest.mark.asyncio
@pytest.mark.parametrize("target", [0, 4, -1])
async def test_reposition_out_of_range_names_valid_range(store, ordering, target):
    queue = await seed_queue(store, ["A", "B", "C"])
    ids = store.ids_by_name(queue.id)

    with pytest.raises(ValidationError, match="between 1 and 3"):
        await ordering.reposition(queue.id, ids["A"], target)
    assert store.approved_names(queue.id) == ["A", "B", "C"]


@pytest.mark.asyncio
async def test_reposition_unknown_item_raises(store, ordering):
    queue = await seed_queue(store, ["A", "B"])

    with pytest.raises(NotFoundError):
        await ordering.reposition(queue.id, "missing", 1)


@pytest.mark.asyncio
async def test_gap_left_by_failed_write_is_renumbered(store, ordering):
    queue = await seed_queue(store, ["A", "B", "C"])
    ids = store.ids_by_name(queue.id)
    # Simulate a delete whose follow-up shift never happened
    del store.items[ids["A"]]

    approved = await ordering.list_approved(queue.id)

    assert [(i.name, i.position) for i in approved] == [("B", 1), ("C", 2)]
    _assert_dense(store, queue.id)


@pytest.mark.asyncio
async def test_positions_stay_dense_under_random_operations(store):
    ordering = QueueOrderingManager(store)
    queue = await seed_queue(store, ["P0", "P1", "P2"])
    rng = random.Random(1234)
    counter = 3

    for _ in range(200):
        approved = await store.list_approved_items(queue.id)
        op = rng.choice(["insert", "waiting", "approve", "remove", "front", "reposition", "complete"])
        if op == "insert":
            await ordering.insert(queue.id, f"P{counter}")
            counter += 1
        elif op == "waiting":
            await ordering.insert(queue.id, f"P{counter}", ItemStatus.WAITING)
            counter += 1
        elif op == "approve":
            waiting = [i for i in store.items.values() if i.status == ItemStatus.WAITING]
            if waiting:
                await ordering.approve(queue.id, rng.choice(waiting).id)
        elif op == "remove" and approved:
            await ordering.remove(queue.id, rng.choice(approved).id)
        elif op == "front" and approved:
            await ordering.move_to_end(queue.id, approved[0].id)
        elif op == "reposition" and approved:
            await ordering.reposition(
                queue.id, rng.choice(approved).id, rng.randint(1, len(approved))
            )
        elif op == "complete" and approved:
            await ordering.complete(queue.id, rng.choice(approved).id)

        _assert_dense(store, queue.id)



@pytest.mark.asyncio
async def test_single_shift_uses_row_update(store, ordering, monkeypatch):
    queue = await seed_queue(store, ["A", "B", "C"])
    ids = store.ids_by_name(queue.id)

    async def no_batch(queue_id, positions):
        raise AssertionError("batch write not expected")

    monkeypatch.setattr(store, "update_item_positions", no_batch)

    assert await ordering.remove(queue.id, ids["B"]) is True
    assert store.approved_names(queue.id) == ["A", "C"]
    assert store.items[ids["C"]].position == 2
    assert store.position_writes == 1
