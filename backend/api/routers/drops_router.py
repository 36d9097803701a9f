"""Drop run API routes."""

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from api.core.dependencies import CurrentUser, get_current_user, get_drop_engine, require_master
from api.services import DropEngine, PartialWriteError, ValidationError
from shared.models.drop import DropAction

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/drops", tags=["drops"])


# ============================================
# Response / Request Models
# ============================================


class SlotResponse(BaseModel):
    slot_id: str
    seat: int
    item_id: str
    name: str
    position: int | None = None


class SessionResponse(BaseModel):
    queue_id: str
    drop_event_id: str
    item_name: str
    image_url: str | None = None
    state: str
    total_count: int
    processed_count: int
    needs_reconcile: bool
    current_slots: list[SlotResponse]


class SkippedQueue(BaseModel):
    queue_id: str
    reason: str


class StartDropsRequest(BaseModel):
    selections: dict[str, int] = Field(description="queue_id -> number of drops")
    participants: list[str] = Field(description="Names allowed to occupy slots")


class StartDropsResponse(BaseModel):
    sessions: list[SessionResponse]
    skipped: list[SkippedQueue]
    progress: float


class DropStateResponse(BaseModel):
    eligible: list[str]
    sessions: list[SessionResponse]
    progress: float
    active: bool
    complete: bool


class DecisionResponse(BaseModel):
    action: str
    slot_id: str
    name: str
    replacement: str | None = None
    session: SessionResponse
    progress: float


class DropResultResponse(BaseModel):
    id: str
    drop_event_id: str
    queue_item_id: str | None = None
    name: str
    action: str
    created_at: datetime | None = None
    item_name: str
    image_url: str | None = None


class DropResultsResponse(BaseModel):
    picked_up: list[DropResultResponse]
    missed: list[DropResultResponse]


class CopyResponse(BaseModel):
    text: str


class ClearResponse(BaseModel):
    cleared_count: int


# ============================================
# Run Endpoints
# ============================================


@router.post("/start", response_model=StartDropsResponse)
async def start_drops(
    body: StartDropsRequest,
    user: CurrentUser = Depends(require_master),
    engine: DropEngine = Depends(get_drop_engine),
) -> StartDropsResponse:
    """Start a drop run over the selected queues."""
    try:
        report = await engine.start_drops(body.selections, body.participants, user.id)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except Exception as e:
        logger.exception(f"Failed to start drops: {e}")
        raise HTTPException(status_code=500, detail="Failed to start drops") from None
    return StartDropsResponse(**report)


@router.get("/state", response_model=DropStateResponse)
async def get_drop_state(
    _: CurrentUser = Depends(require_master),
    engine: DropEngine = Depends(get_drop_engine),
) -> DropStateResponse:
    return DropStateResponse(**engine.get_state())


@router.post("/{queue_id}/slots/{slot_id}/{action}", response_model=DecisionResponse)
async def decide(
    queue_id: str,
    slot_id: str,
    action: DropAction,
    _: CurrentUser = Depends(require_master),
    engine: DropEngine = Depends(get_drop_engine),
) -> DecisionResponse:
    """Accept, skip or decline the name in a slot."""
    try:
        decision = await engine.decide(queue_id, slot_id, action)
    except PartialWriteError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    except Exception as e:
        logger.exception(f"Failed to {action} slot {slot_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to apply decision") from None

    if decision is None:
        raise HTTPException(status_code=404, detail="Slot not found")
    return DecisionResponse(**decision.to_dict(), progress=engine.get_progress())


@router.get("/{queue_id}/copy", response_model=CopyResponse)
async def copy_drop_results(
    queue_id: str,
    _: CurrentUser = Depends(require_master),
    engine: DropEngine = Depends(get_drop_engine),
) -> CopyResponse:
    """Text listing the names currently holding slots for a queue."""
    text = engine.copy_drop_results(queue_id)
    if text is None:
        raise HTTPException(status_code=404, detail="No active slots for this queue")
    return CopyResponse(text=text)


@router.post("/reset", status_code=204)
async def reset_drops(
    _: CurrentUser = Depends(require_master),
    engine: DropEngine = Depends(get_drop_engine),
) -> None:
    engine.reset_drops()


# ============================================
# Result Lists
# ============================================


@router.get("/results", response_model=DropResultsResponse)
async def get_results(
    _: CurrentUser = Depends(get_current_user),
    engine: DropEngine = Depends(get_drop_engine),
) -> DropResultsResponse:
    return DropResultsResponse(
        picked_up=[DropResultResponse(**r.to_dict()) for r in engine.get_picked_up()],
        missed=[DropResultResponse(**r.to_dict()) for r in engine.get_missed()],
    )


@router.delete("/results/picked-up", response_model=ClearResponse)
async def clear_picked_up(
    _: CurrentUser = Depends(require_master),
    engine: DropEngine = Depends(get_drop_engine),
) -> ClearResponse:
    try:
        cleared = await engine.clear_picked_up()
    except Exception as e:
        logger.exception(f"Failed to clear picked-up list: {e}")
        raise HTTPException(status_code=500, detail="Failed to clear picked-up list") from None
    return ClearResponse(cleared_count=cleared)


@router.delete("/results/missed", response_model=ClearResponse)
async def clear_missed(
    _: CurrentUser = Depends(require_master),
    engine: DropEngine = Depends(get_drop_engine),
) -> ClearResponse:
    try:
        cleared = await engine.clear_missed()
    except Exception as e:
        logger.exception(f"Failed to clear missed list: {e}")
        raise HTTPException(status_code=500, detail="Failed to clear missed list") from None
    return ClearResponse(cleared_count=cleared)
