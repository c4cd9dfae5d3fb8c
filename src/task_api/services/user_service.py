"""User registration."""

import secrets
import uuid

import structlog
from sqlalchemy.orm import Session

from task_api.database.repository import ApiKeyRepository, UserRepository
from task_api.schemas import UserCreate, UserWithApiKey

logger = structlog.get_logger()


def generate_api_key() -> str:
    """Generate a 32-character hex API key."""
    return secrets.token_hex(16)


class UserService:
    """Creates users together with their API key."""

    def __init__(self, session: Session):
        self.session = session
        self.users = UserRepository(session)
        self.api_keys = ApiKeyRepository(session)

    def create(self, data: UserCreate) -> UserWithApiKey:
        """Create a user and issue an API key in one transaction.

        The user row is rolled back if issuing the key fails.
        """
        user_id = str(uuid.uuid4())
        api_key = generate_api_key()

        try:
            user = self.users.create(user_id, data.name)
            self.api_keys.create(user_id, api_key)
            self.session.commit()
        except Exception:
            self.session.rollback()
            logger.error("User creation failed", user_id=user_id)
            raise

        return UserWithApiKey(**user.model_dump(), api_key=api_key)
