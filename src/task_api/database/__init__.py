"""Database package for persistent storage."""

from task_api.database.connection import DatabaseManager
from task_api.database.models import ApiKeyModel, Base, TaskModel, UserModel
from task_api.database.repository import ApiKeyRepository, TaskRepository, UserRepository

__all__ = [
    "ApiKeyModel",
    "ApiKeyRepository",
    "Base",
    "DatabaseManager",
    "TaskModel",
    "TaskRepository",
    "UserModel",
    "UserRepository",
]
