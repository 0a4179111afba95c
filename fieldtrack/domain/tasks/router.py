"""Task router - FastAPI endpoints for task operations"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...models import User
from ...services.image_pipeline import ImagePipeline, get_image_pipeline
from ...shared.forms import parse_form_json, read_uploads, sse_events
from ...shared.timeofday import normalize_time
from ..feed import FeedScope, SnapshotFeed, get_feed
from ..listing import TaskFilters
from . import scheduler
from .schemas import (
    SlotApprovalUpdate,
    TaskCreate,
    TaskPageResponse,
    TaskResponse,
    TaskSortKey,
    TaskStatus,
    TaskStatusUpdate,
    TaskUpdate,
)
from .service import TaskService, to_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tasks", tags=["Tasks"])


def get_task_service(
    db: Session = Depends(get_db),
    pipeline: ImagePipeline = Depends(get_image_pipeline),
    feed: SnapshotFeed = Depends(get_feed),
) -> TaskService:
    """Dependency injection for TaskService"""
    return TaskService(db, pipeline, feed)


@router.get("", response_model=TaskPageResponse)
async def list_tasks(
    search: str = Query(""),
    sort: TaskSortKey = Query("newest"),
    page: int = Query(1, ge=1),
    status: list[TaskStatus] = Query(default=[]),
    hasImages: Optional[bool] = Query(None),
    users: list[int] = Query(default=[]),
    current_user: User = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    """List visible tasks (admins see all, users their own)"""
    filters = TaskFilters(status=tuple(status), has_images=hasImages, users=tuple(users))
    result = service.list_tasks(current_user, search=search, sort=sort, filters=filters, page=page)
    return TaskPageResponse(
        items=[to_response(t) for t in result.items],
        totalCount=result.total_count,
        totalPages=result.total_pages,
        page=result.page,
        pageSize=result.page_size,
    )


@router.get("/events")
async def task_events(
    current_user: User = Depends(get_current_user),
    feed: SnapshotFeed = Depends(get_feed),
):
    """Live task snapshots as server-sent events"""
    stream = feed.stream(
        "tasks",
        FeedScope.for_actor(current_user),
        transform=lambda snapshot: [to_response(t).model_dump(mode="json") for t in snapshot],
    )
    return StreamingResponse(sse_events(stream), media_type="text/event-stream")


@router.get("/slots/end-times")
async def get_end_times(start: str = Query(..., description="Start time, HH:MM or h:mm AM/PM")):
    """End-time choices for a slot starting at `start`"""
    options = scheduler.end_time_options(start)
    return {
        "start": normalize_time(start),
        "endTimes": [option["time"] for option in options],
        "options": options,
    }


@router.get("/{task_id}", response_model=TaskResponse)
async def get_task(
    task_id: int,
    current_user: User = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    return to_response(service.get_task(task_id, current_user))


@router.post("", response_model=TaskResponse, status_code=201)
async def create_task(
    data: str = Form(...),
    files: list[UploadFile] = File(default=[]),
    current_user: User = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    """Create a task; `data` is the JSON task body, `files` the new images"""
    payload = parse_form_json(TaskCreate, data)
    task = await service.create_task(payload, current_user, await read_uploads(files))
    return to_response(task)


@router.patch("/{task_id}", response_model=TaskResponse)
async def update_task(
    task_id: int,
    data: str = Form("{}"),
    files: list[UploadFile] = File(default=[]),
    current_user: User = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    payload = parse_form_json(TaskUpdate, data)
    task = await service.update_task(task_id, payload, current_user, await read_uploads(files))
    return to_response(task)


@router.patch("/{task_id}/status", response_model=TaskResponse)
async def update_task_status(
    task_id: int,
    data: TaskStatusUpdate,
    current_user: User = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    """Mark a task in-progress or completed (admin only)"""
    return to_response(service.set_status(task_id, data.status, current_user))


@router.patch("/{task_id}/slots/{index}/approval", response_model=TaskResponse)
async def update_slot_approval(
    task_id: int,
    index: int,
    data: SlotApprovalUpdate,
    current_user: User = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    """Approve or un-approve one time slot (admin only)"""
    return to_response(service.set_slot_approval(task_id, index, data.approved, current_user))


@router.delete("/{task_id}")
async def delete_task(
    task_id: int,
    current_user: User = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    return service.delete_task(task_id, current_user)
