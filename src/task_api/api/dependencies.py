"""FastAPI dependencies resolving shared resources from application state."""

from dataclasses import dataclass
from typing import Generator

import structlog
from fastapi import Depends, Request, Response, Security
from fastapi.security import APIKeyHeader
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from task_api.caching.task_cache import TaskCache
from task_api.database.repository import ApiKeyRepository
from task_api.errors import AuthenticationError, TaskAPIError
from task_api.middleware.rate_limiter import RateLimiter
from task_api.services.task_service import TaskService
from task_api.services.user_service import UserService

logger = structlog.get_logger()

API_KEY_HEADER = "x-api-key"

api_key_header = APIKeyHeader(name=API_KEY_HEADER, auto_error=False)


@dataclass(frozen=True)
class Identity:
    """Authenticated caller."""

    user_id: str
    api_key: str


def get_db(request: Request) -> Generator[Session, None, None]:
    """Yield a database session from the application's DatabaseManager."""
    session = request.app.state.db_manager.SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_task_cache(request: Request) -> TaskCache:
    return request.app.state.task_cache


def get_rate_limiter(request: Request) -> RateLimiter | None:
    return request.app.state.rate_limiter


def get_task_service(
    db: Session = Depends(get_db),
    cache: TaskCache = Depends(get_task_cache),
) -> TaskService:
    return TaskService(db, cache)


def get_user_service(db: Session = Depends(get_db)) -> UserService:
    return UserService(db)


def authenticate(
    api_key: str | None = Security(api_key_header),
    db: Session = Depends(get_db),
) -> Identity:
    """Resolve the x-api-key header to its owner."""
    if not api_key:
        raise AuthenticationError(
            f"API key is required. Please provide the {API_KEY_HEADER} header."
        )

    try:
        user_id = ApiKeyRepository(db).find_user_id(api_key)
    except SQLAlchemyError as e:
        logger.error("API key lookup failed", error=str(e))
        raise TaskAPIError("Error validating authentication.") from e

    if not user_id:
        logger.warning("Invalid API key attempt")
        raise AuthenticationError("Invalid API key.")

    structlog.contextvars.bind_contextvars(user_id=user_id)
    return Identity(user_id=user_id, api_key=api_key)


def enforce_rate_limit(
    response: Response,
    identity: Identity = Depends(authenticate),
    limiter: RateLimiter | None = Depends(get_rate_limiter),
) -> Identity:
    """Count the request against the caller's API key.

    Raises RateLimitExceeded when over quota. Headers are only attached when
    the limiter produced a decision.
    """
    if limiter is None:
        return identity

    decision = limiter.check(identity.api_key)
    if decision is not None:
        response.headers.update(decision.headers())
    return identity
