"""Repository pattern implementation for database operations."""

from datetime import datetime
from typing import Any

import structlog
from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from task_api.database.models import ApiKeyModel, TaskModel, UserModel
from task_api.schemas import Task, TaskCreate, User

logger = structlog.get_logger()


class TaskRepository:
    """Repository for task operations. All lookups are scoped to the owner."""

    def __init__(self, session: Session):
        self.session = session

    def create(self, user_id: str, task: TaskCreate) -> Task:
        """Create a new task."""
        db_task = TaskModel(
            user_id=user_id,
            title=task.title,
            description=task.description,
        )
        self.session.add(db_task)
        self.session.flush()

        logger.info("Task created", task_id=db_task.id, user_id=user_id)
        return self._to_schema(db_task)

    def _get_owned(self, task_id: str, user_id: str) -> TaskModel | None:
        return self.session.execute(
            select(TaskModel).where(
                TaskModel.id == task_id,
                TaskModel.user_id == user_id,
            )
        ).scalar_one_or_none()

    def update(self, task_id: str, user_id: str, fields: dict[str, Any]) -> Task | None:
        """Apply ``fields`` to an owned task. Returns None if nothing matched."""
        db_task = self._get_owned(task_id, user_id)
        if not db_task:
            return None

        for field, value in fields.items():
            setattr(db_task, field, value)

        db_task.updated_at = datetime.utcnow()
        self.session.flush()

        return self._to_schema(db_task)

    def delete(self, task_id: str, user_id: str) -> bool:
        """Delete an owned task."""
        result = self.session.execute(
            delete(TaskModel).where(
                TaskModel.id == task_id,
                TaskModel.user_id == user_id,
            )
        )
        self.session.flush()

        deleted = result.rowcount > 0
        if deleted:
            logger.info("Task deleted", task_id=task_id, user_id=user_id)
        return deleted

    def list(
        self,
        user_id: str,
        done: bool | None = None,
        limit: int = 10,
        offset: int = 0,
    ) -> list[Task]:
        """List an owner's tasks, newest first."""
        query = select(TaskModel).where(TaskModel.user_id == user_id)
        if done is not None:
            query = query.where(TaskModel.done == done)

        query = query.order_by(TaskModel.created_at.desc()).offset(offset).limit(limit)
        return [self._to_schema(t) for t in self.session.execute(query).scalars()]

    def count(self, user_id: str, done: bool | None = None) -> int:
        """Count an owner's tasks."""
        query = select(func.count(TaskModel.id)).where(TaskModel.user_id == user_id)
        if done is not None:
            query = query.where(TaskModel.done == done)
        return self.session.execute(query).scalar() or 0

    def _to_schema(self, db_task: TaskModel) -> Task:
        """Convert database model to Pydantic schema."""
        return Task.model_validate(db_task)


class UserRepository:
    """Repository for user operations."""

    def __init__(self, session: Session):
        self.session = session

    def create(self, user_id: str, name: str) -> User:
        """Create a new user."""
        db_user = UserModel(user_id=user_id, name=name)
        self.session.add(db_user)
        self.session.flush()

        logger.info("User created", user_id=user_id)
        return User.model_validate(db_user)

    def get(self, user_id: str) -> User | None:
        """Get a user by ID."""
        db_user = self.session.execute(
            select(UserModel).where(UserModel.user_id == user_id)
        ).scalar_one_or_none()
        return User.model_validate(db_user) if db_user else None


class ApiKeyRepository:
    """Repository for API key lookups."""

    def __init__(self, session: Session):
        self.session = session

    def create(self, user_id: str, key: str) -> None:
        """Store an API key for a user."""
        self.session.add(ApiKeyModel(user_id=user_id, key=key))
        self.session.flush()

    def find_user_id(self, key: str) -> str | None:
        """Resolve an API key to its owner's user ID."""
        return self.session.execute(
            select(ApiKeyModel.user_id).where(ApiKeyModel.key == key)
        ).scalar_one_or_none()
