"""Queue API routes: queue CRUD, membership and ordering."""

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from api.core.dependencies import CurrentUser, get_current_user, get_queue_service, require_master
from api.services import NotFoundError, QueueError, QueueService, ValidationError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/queues", tags=["queues"])


# ============================================
# Response / Request Models
# ============================================


class QueueItemResponse(BaseModel):
    id: str
    queue_id: str
    name: str
    position: int | None = None
    status: str
    requested_by: str | None = None
    created_at: datetime | None = None


class QueueStateResponse(BaseModel):
    id: str
    title: str
    item_name: str | None = None
    image_url: str | None = None
    created_by: str | None = None
    created_at: datetime | None = None
    approved: list[QueueItemResponse]
    waiting: list[QueueItemResponse]
    completed: list[QueueItemResponse]
    total_approved: int


class QueueCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    item_name: str = Field(min_length=1)
    image_url: str | None = None


class QueueUpdate(BaseModel):
    title: str | None = Field(default=None, max_length=255)
    item_name: str | None = None
    image_url: str | None = None


class PersonAdd(BaseModel):
    name: str = Field(min_length=1, max_length=255)


class PositionUpdate(BaseModel):
    position: int


def _http_error(e: QueueError) -> HTTPException:
    if isinstance(e, ValidationError):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    logger.error(f"Queue operation failed: {e}")
    return HTTPException(status_code=409, detail=str(e))


# ============================================
# Queue Endpoints
# ============================================


@router.get("", response_model=list[QueueStateResponse])
async def list_queues(
    _: CurrentUser = Depends(get_current_user),
    service: QueueService = Depends(get_queue_service),
) -> list[QueueStateResponse]:
    """List all queues with their items."""
    try:
        queues = await service.list_queues()
    except Exception as e:
        logger.exception(f"Failed to list queues: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch queues") from None
    return [QueueStateResponse(**q) for q in queues]


@router.post("", response_model=QueueStateResponse, status_code=201)
async def create_queue(
    body: QueueCreate,
    user: CurrentUser = Depends(require_master),
    service: QueueService = Depends(get_queue_service),
) -> QueueStateResponse:
    try:
        state = await service.create_queue(body.title, body.item_name, body.image_url, user.id)
    except QueueError as e:
        raise _http_error(e) from e
    return QueueStateResponse(**state)


@router.get("/{queue_id}", response_model=QueueStateResponse)
async def get_queue(
    queue_id: str,
    _: CurrentUser = Depends(get_current_user),
    service: QueueService = Depends(get_queue_service),
) -> QueueStateResponse:
    try:
        state = await service.get_queue_state(queue_id)
    except QueueError as e:
        raise _http_error(e) from e
    return QueueStateResponse(**state)


@router.patch("/{queue_id}", response_model=QueueStateResponse)
async def update_queue(
    queue_id: str,
    body: QueueUpdate,
    _: CurrentUser = Depends(require_master),
    service: QueueService = Depends(get_queue_service),
) -> QueueStateResponse:
    """Update title, item name and/or image URL."""
    try:
        state = await service.update_queue(
            queue_id, title=body.title, item_name=body.item_name, image_url=body.image_url
        )
    except QueueError as e:
        raise _http_error(e) from e
    return QueueStateResponse(**state)


@router.delete("/{queue_id}", status_code=204)
async def delete_queue(
    queue_id: str,
    _: CurrentUser = Depends(require_master),
    service: QueueService = Depends(get_queue_service),
) -> None:
    """Delete a queue together with its items and drop history."""
    if not await service.delete_queue(queue_id):
        raise HTTPException(status_code=404, detail="Queue not found")


# ============================================
# Membership Endpoints
# ============================================


@router.post("/{queue_id}/join", response_model=QueueStateResponse)
async def request_to_join(
    queue_id: str,
    user: CurrentUser = Depends(get_current_user),
    service: QueueService = Depends(get_queue_service),
) -> QueueStateResponse:
    """Ask to join a queue; a master has to approve the request."""
    try:
        state = await service.request_to_join(queue_id, user.name, user.id)
    except QueueError as e:
        raise _http_error(e) from e
    logger.info(f"User {user.id} requested to join queue {queue_id}")
    return QueueStateResponse(**state)


@router.post("/{queue_id}/items", response_model=QueueStateResponse, status_code=201)
async def add_person(
    queue_id: str,
    body: PersonAdd,
    user: CurrentUser = Depends(require_master),
    service: QueueService = Depends(get_queue_service),
) -> QueueStateResponse:
    try:
        state = await service.add_person(queue_id, body.name, user.id)
    except QueueError as e:
        raise _http_error(e) from e
    return QueueStateResponse(**state)


@router.post("/{queue_id}/items/{item_id}/approve", response_model=QueueStateResponse)
async def approve_item(
    queue_id: str,
    item_id: str,
    _: CurrentUser = Depends(require_master),
    service: QueueService = Depends(get_queue_service),
) -> QueueStateResponse:
    try:
        state = await service.approve(queue_id, item_id)
    except QueueError as e:
        raise _http_error(e) from e
    return QueueStateResponse(**state)


@router.delete("/{queue_id}/items/{item_id}", response_model=QueueStateResponse)
async def remove_item(
    queue_id: str,
    item_id: str,
    _: CurrentUser = Depends(require_master),
    service: QueueService = Depends(get_queue_service),
) -> QueueStateResponse:
    """Remove an item, or reject a waiting request."""
    try:
        state = await service.remove(queue_id, item_id)
    except QueueError as e:
        raise _http_error(e) from e
    return QueueStateResponse(**state)


@router.post("/{queue_id}/items/{item_id}/complete", response_model=QueueStateResponse)
async def complete_item(
    queue_id: str,
    item_id: str,
    _: CurrentUser = Depends(require_master),
    service: QueueService = Depends(get_queue_service),
) -> QueueStateResponse:
    try:
        state = await service.complete(queue_id, item_id)
    except QueueError as e:
        raise _http_error(e) from e
    return QueueStateResponse(**state)


@router.post("/{queue_id}/items/{item_id}/move-to-end", response_model=QueueStateResponse)
async def move_item_to_end(
    queue_id: str,
    item_id: str,
    _: CurrentUser = Depends(require_master),
    service: QueueService = Depends(get_queue_service),
) -> QueueStateResponse:
    """Rotate the front item to the back. Other positions are left alone."""
    try:
        state = await service.move_to_end(queue_id, item_id)
    except QueueError as e:
        raise _http_error(e) from e
    return QueueStateResponse(**state)


@router.put("/{queue_id}/items/{item_id}/position", response_model=QueueStateResponse)
async def reposition_item(
    queue_id: str,
    item_id: str,
    body: PositionUpdate,
    _: CurrentUser = Depends(require_master),
    service: QueueService = Depends(get_queue_service),
) -> QueueStateResponse:
    try:
        state = await service.reposition(queue_id, item_id, body.position)
    except QueueError as e:
        raise _http_error(e) from e
    return QueueStateResponse(**state)
