"""Task use cases with cache-aside listing and owner-wide invalidation."""

import math

import structlog
from sqlalchemy.orm import Session

from task_api.caching.task_cache import TaskCache
from task_api.database.repository import TaskRepository
from task_api.errors import BadRequestError
from task_api.schemas import PaginatedTasks, PaginationMeta, Task, TaskCreate, TaskUpdate

logger = structlog.get_logger()

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100


class TaskService:
    """Coordinates the task repository with the listing cache.

    Listings are served from the cache when possible. Every mutation is
    committed first and only then invalidates the owner's cached listings, so
    a failed or no-op mutation never touches the cache.
    """

    def __init__(self, session: Session, cache: TaskCache):
        self.session = session
        self.cache = cache
        self.tasks = TaskRepository(session)

    def _commit_and_invalidate(self, user_id: str) -> None:
        self.session.commit()
        self.cache.invalidate(user_id)

    def create(self, user_id: str, data: TaskCreate) -> Task:
        """Create a task for ``user_id``."""
        task = self.tasks.create(user_id, data)
        self._commit_and_invalidate(user_id)
        return task

    def list_tasks(
        self,
        user_id: str,
        done: bool | None = None,
        page: int | None = None,
        limit: int | None = None,
    ) -> PaginatedTasks:
        """Return one page of the owner's tasks, newest first."""
        page = max(1, page or 1)
        limit = min(MAX_PAGE_SIZE, max(1, limit or DEFAULT_PAGE_SIZE))
        filters = {"done": done, "page": page, "limit": limit}

        cached = self.cache.get(user_id, filters)
        if cached is not None:
            try:
                return PaginatedTasks.model_validate(cached)
            except ValueError as e:
                logger.warning("Discarding malformed cache entry", user_id=user_id, error=str(e))

        items = self.tasks.list(user_id, done=done, limit=limit, offset=(page - 1) * limit)
        total = self.tasks.count(user_id, done=done)
        total_pages = math.ceil(total / limit)

        response = PaginatedTasks(
            data=items,
            meta=PaginationMeta(
                page=page,
                limit=limit,
                total=total,
                total_pages=total_pages,
                has_next_page=page < total_pages,
                has_prev_page=page > 1,
            ),
        )

        self.cache.set(user_id, response.model_dump(mode="json"), filters)
        return response

    def update(self, task_id: str, user_id: str, data: TaskUpdate) -> Task | None:
        """Apply the provided fields. Returns None when no owned task matched."""
        fields = {k: v for k, v in data.model_dump(exclude_unset=True).items() if v is not None}
        if not fields:
            raise BadRequestError("No data provided for update.")

        task = self.tasks.update(task_id, user_id, fields)
        if task is None:
            return None

        self._commit_and_invalidate(user_id)
        return task

    def complete(self, task_id: str, user_id: str) -> Task | None:
        """Mark a task as done. Returns None when no owned task matched."""
        task = self.tasks.update(task_id, user_id, {"done": True})
        if task is None:
            return None

        self._commit_and_invalidate(user_id)
        return task

    def delete(self, task_id: str, user_id: str) -> bool:
        """Delete a task. Returns False when no owned task matched."""
        if not self.tasks.delete(task_id, user_id):
            return False

        self._commit_and_invalidate(user_id)
        return True
