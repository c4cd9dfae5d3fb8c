"""Business services for tasks and users."""

from task_api.services.task_service import TaskService
from task_api.services.user_service import UserService

__all__ = ["TaskService", "UserService"]
