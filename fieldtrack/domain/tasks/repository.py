"""Task repository - Database operations for tasks"""

from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from ...database import commit_or_rollback
from ...errors import PersistenceError
from ...models import Task


class TaskRepository:
    """Repository for task database operations"""

    @staticmethod
    def list_visible(db: Session, owner_id: Optional[int] = None) -> list[Task]:
        """All tasks (owner_id None) or one owner's tasks, newest first"""
        query = db.query(Task).options(joinedload(Task.owner))
        if owner_id is not None:
            query = query.filter(Task.user_id == owner_id)
        try:
            return query.order_by(Task.created_at.desc(), Task.id.desc()).all()
        except SQLAlchemyError as e:
            raise PersistenceError("Failed to load tasks") from e

    @staticmethod
    def get_task(db: Session, task_id: int) -> Optional[Task]:
        try:
            return db.query(Task).options(joinedload(Task.owner)).filter(Task.id == task_id).first()
        except SQLAlchemyError as e:
            raise PersistenceError("Failed to load task") from e

    @staticmethod
    def create_task(db: Session, user_id: int, **task_data) -> Task:
        task = Task(user_id=user_id, **task_data)
        db.add(task)
        commit_or_rollback(db, "create task")
        db.refresh(task)
        return task

    @staticmethod
    def update_task(db: Session, task: Task, **updates) -> Task:
        for key, value in updates.items():
            setattr(task, key, value)
        commit_or_rollback(db, f"update task {task.id}")
        db.refresh(task)
        return task

    @staticmethod
    def delete_task(db: Session, task: Task) -> None:
        db.delete(task)
        commit_or_rollback(db, f"delete task {task.id}")
