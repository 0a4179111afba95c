"""Task service - Business logic for task operations"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ...errors import FieldTrackError, NotFound, PermissionDenied
from ...models import TASK_IN_PROGRESS, Task, User
from ...services.image_pipeline import ImageFile, ImagePipeline
from ...shared.validators import require_text
from .. import policy
from ..feed import SnapshotFeed
from ..listing import ListPage, TaskFilters, query_tasks
from ..users.repository import UserRepository
from . import scheduler
from .repository import TaskRepository
from .schemas import TaskCreate, TaskResponse, TaskUpdate, slots_from_records, slots_to_records

logger = logging.getLogger(__name__)

TITLE_REQUIRED = "Please provide a task title"
SITE_REQUIRED = "Please provide a site location"


def to_response(task: Task) -> TaskResponse:
    slots = slots_from_records(task.time_slots)
    return TaskResponse(
        id=task.id,
        title=task.title,
        site=task.site,
        description=task.description or "",
        notes=task.notes,
        status=task.status,
        timeSlots=slots,
        schedule=[scheduler.summarize_slot(slot) for slot in slots],
        images=list(task.images or []),
        userId=task.owner.firebase_uid if task.owner else "",
        uploaderEmail=task.uploader_email,
        createdAt=task.created_at,
        updatedAt=task.updated_at,
    )


class TaskService:
    """Service layer for task business logic"""

    def __init__(self, db: Session, pipeline: ImagePipeline, feed: SnapshotFeed):
        self.db = db
        self.repo = TaskRepository()
        self.pipeline = pipeline
        self.feed = feed

    def list_tasks(
        self,
        user: User,
        search: str = "",
        sort: str = "newest",
        filters: Optional[TaskFilters] = None,
        page: int = 1,
    ) -> ListPage:
        is_admin = policy.is_admin(user)
        tasks = self.repo.list_visible(self.db, None if is_admin else user.id)
        owners = UserRepository.owner_directory(self.db) if is_admin else {}
        return query_tasks(
            tasks,
            search=search,
            sort=sort,
            filters=filters,
            page=page,
            viewer_is_admin=is_admin,
            owners=owners,
        )

    def get_task(self, task_id: int, user: User) -> Task:
        task = self.repo.get_task(self.db, task_id)
        if not task or not (policy.is_admin(user) or policy.is_owner(user, task)):
            raise NotFound("Task not found")
        return task

    async def _upload(self, user: User, files: Optional[list[ImageFile]]) -> list[str]:
        return await self.pipeline.upload_images(files or [], f"tasks/{user.firebase_uid}")

    async def create_task(self, data: TaskCreate, user: User, files: Optional[list[ImageFile]] = None) -> Task:
        logger.info(f"📥 Creating task for user_id: {user.id}")
        is_admin = policy.is_admin(user)
        title = require_text(data.title, TITLE_REQUIRED)
        site = require_text(data.site, SITE_REQUIRED)

        # A new task has no stored slots, so non-admins cannot bring approved ones
        slots = scheduler.reconcile_slots([], data.timeSlots, is_admin=is_admin)
        scheduler.validate_slots(slots)
        status = data.status if is_admin and data.status else TASK_IN_PROGRESS

        urls = await self._upload(user, files)
        try:
            task = self.repo.create_task(
                self.db,
                user.id,
                title=title,
                site=site,
                description=data.description or "",
                notes=data.notes or "",
                status=status,
                time_slots=slots_to_records(slots),
                images=[*data.existingImages, *urls],
                uploader_email=user.email,
            )
        except FieldTrackError:
            await self.pipeline.discard(urls)
            raise
        logger.info(f"✅ Task {task.id} created with {len(slots)} time slot(s)")
        self.feed.publish("tasks")
        return task

    def _changed_fields(self, task: Task, data: TaskUpdate, has_files: bool) -> dict:
        """Submitted values that differ from what is stored, keyed by API field name"""
        changes = {}
        submitted = data.model_dump(exclude_unset=True, exclude={"timeSlots", "existingImages"})
        current = {
            "title": task.title,
            "site": task.site,
            "description": task.description,
            "notes": task.notes,
            "status": task.status,
        }
        for field, value in submitted.items():
            if value is not None and value != current[field]:
                changes[field] = value
        if data.timeSlots is not None and slots_to_records(data.timeSlots) != list(task.time_slots or []):
            changes["timeSlots"] = data.timeSlots
        images_changed = data.existingImages is not None and data.existingImages != list(task.images or [])
        if has_files or images_changed:
            changes["images"] = data.existingImages if data.existingImages is not None else list(task.images or [])
        return changes

    async def update_task(
        self, task_id: int, data: TaskUpdate, user: User, files: Optional[list[ImageFile]] = None
    ) -> Task:
        task = self.get_task(task_id, user)
        is_admin = policy.is_admin(user)
        changes = self._changed_fields(task, data, bool(files))
        if not changes:
            return task
        policy.ensure_can_edit_task_fields(user, task, changes.keys())

        updates = {}
        if "title" in changes:
            updates["title"] = require_text(changes["title"], TITLE_REQUIRED)
        if "site" in changes:
            updates["site"] = require_text(changes["site"], SITE_REQUIRED)
        for field in ("description", "notes", "status"):
            if field in changes:
                updates[field] = changes[field]
        if "timeSlots" in changes:
            previous = slots_from_records(task.time_slots)
            slots = scheduler.reconcile_slots(previous, changes["timeSlots"], is_admin=is_admin)
            scheduler.validate_slots(slots)
            updates["time_slots"] = slots_to_records(slots)
        urls = []
        if "images" in changes:
            urls = await self._upload(user, files)
            updates["images"] = [*changes["images"], *urls]

        try:
            task = self.repo.update_task(self.db, task, **updates)
        except FieldTrackError:
            await self.pipeline.discard(urls)
            raise
        logger.info(f"✅ Task {task.id} updated by user_id {user.id}: {sorted(changes)}")
        self.feed.publish("tasks")
        return task

    def set_status(self, task_id: int, status: str, user: User) -> Task:
        if not policy.is_admin(user):
            raise PermissionDenied("Only admins can change the task status")
        task = self.get_task(task_id, user)
        task = self.repo.update_task(self.db, task, status=status)
        logger.info(f"✅ Task {task.id} marked {status}")
        self.feed.publish("tasks")
        return task

    def set_slot_approval(self, task_id: int, index: int, approved: bool, user: User) -> Task:
        policy.ensure_can_set_approval(user)
        task = self.get_task(task_id, user)
        slots = scheduler.set_approval(slots_from_records(task.time_slots), index, approved, is_admin=True)
        task = self.repo.update_task(self.db, task, time_slots=slots_to_records(slots))
        logger.info(f"{'🔒' if approved else '🔓'} Task {task.id} slot {index} approved={approved}")
        self.feed.publish("tasks")
        return task

    def delete_task(self, task_id: int, user: User) -> dict:
        task = self.get_task(task_id, user)
        policy.ensure_can_delete_task(user, task)
        self.repo.delete_task(self.db, task)
        logger.info(f"🗑️ Task {task_id} deleted by user_id {user.id}")
        self.feed.publish("tasks")
        return {"message": "Task deleted"}
