"""FastAPI application for the task API."""

import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from http import HTTPStatus
from typing import Literal

import structlog
from fastapi import Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import Response

from task_api import __version__
from task_api.api.dependencies import (
    API_KEY_HEADER,
    Identity,
    enforce_rate_limit,
    get_task_service,
    get_user_service,
)
from task_api.caching.client import RedisManager
from task_api.caching.task_cache import TaskCache
from task_api.config import Settings, get_settings
from task_api.database.connection import DatabaseManager
from task_api.errors import NotFoundError, TaskAPIError
from task_api.logging_config import configure_logging
from task_api.middleware.rate_limiter import (
    LIMIT_HEADER,
    REMAINING_HEADER,
    RESET_HEADER,
    RateLimiter,
)
from task_api.middleware.request_context import RequestContextMiddleware
from task_api.schemas import (
    ErrorResponse,
    HealthResponse,
    PaginatedTasks,
    RateLimitErrorResponse,
    Task,
    TaskCreate,
    TaskUpdate,
    UserCreate,
    UserWithApiKey,
)
from task_api.services.task_service import TaskService
from task_api.services.user_service import UserService

logger = structlog.get_logger()

TASK_ERROR_RESPONSES = {
    401: {"model": ErrorResponse},
    429: {"model": RateLimitErrorResponse},
}


def _build_lifespan(
    settings: Settings,
    redis_manager: RedisManager | None,
    db_manager: DatabaseManager | None,
):
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Build shared resources at startup and release them at shutdown."""
        for issue in settings.validate_production_settings():
            logger.warning("Production config issue", issue=issue)

        owns_db = db_manager is None
        owns_redis = redis_manager is None

        db = db_manager or DatabaseManager.from_settings(settings)
        db.create_tables()

        redis_mgr = redis_manager or RedisManager(
            settings.redis_url,
            socket_timeout=settings.redis_socket_timeout,
            connect_timeout=settings.redis_connect_timeout,
        )
        redis_mgr.connect()

        app.state.db_manager = db
        app.state.redis_manager = redis_mgr
        app.state.task_cache = TaskCache(redis_mgr.client, ttl=settings.cache_ttl)
        app.state.rate_limiter = (
            RateLimiter(
                redis_mgr.client,
                max_requests=settings.rate_limit_max,
                window_seconds=settings.rate_limit_window,
            )
            if settings.rate_limit_enabled
            else None
        )
        app.state.started_at = time.monotonic()

        logger.info(
            "Application started",
            version=__version__,
            environment=settings.app_env,
            rate_limit_enabled=settings.rate_limit_enabled,
        )

        yield

        if owns_redis:
            redis_mgr.close()
        if owns_db:
            db.dispose()
        logger.info("Application shutting down")

    return lifespan


def create_app(
    settings: Settings | None = None,
    redis_manager: RedisManager | None = None,
    db_manager: DatabaseManager | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    ``redis_manager`` and ``db_manager`` may be supplied to reuse existing
    resources; otherwise they are built from ``settings`` at startup and
    closed at shutdown.
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level, json_logs=settings.log_json)

    app = FastAPI(
        title=settings.app_name,
        description="CRUD API for tasks and users with Redis caching and rate limiting.",
        version=__version__,
        docs_url="/api/docs" if not settings.is_production else None,
        redoc_url="/api/reference" if not settings.is_production else None,
        openapi_url="/api/openapi.json" if not settings.is_production else None,
        lifespan=_build_lifespan(settings, redis_manager, db_manager),
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=False,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", API_KEY_HEADER],
        expose_headers=[LIMIT_HEADER, REMAINING_HEADER, RESET_HEADER],
    )
    app.add_middleware(RequestContextMiddleware)

    _setup_exception_handlers(app, settings)
    _setup_routes(app)

    return app


def _setup_exception_handlers(app: FastAPI, settings: Settings):
    @app.exception_handler(TaskAPIError)
    async def task_api_error_handler(request: Request, exc: TaskAPIError):
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_dict(),
            headers=exc.headers,
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        messages = [
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
            for err in exc.errors()
        ]
        return JSONResponse(
            status_code=400,
            content={"error": "Bad Request", "message": "; ".join(messages)},
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            body = {
                "error": "Not Found",
                "message": "The requested route was not found on the server.",
            }
        else:
            body = {"error": HTTPStatus(exc.status_code).phrase, "message": str(exc.detail)}
        return JSONResponse(status_code=exc.status_code, content=body, headers=exc.headers)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(
            "Unhandled exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            exc_info=exc,
        )
        message = str(exc) if settings.is_development else "An internal error occurred."
        return JSONResponse(
            status_code=500,
            content={"error": "Internal Server Error", "message": message},
        )


def _setup_routes(app: FastAPI):
    """Set up all API routes."""

    # ============== System ==============

    @app.get("/api/health", response_model=HealthResponse, tags=["system"])
    def health_check(request: Request):
        """Report process uptime and the state of Redis and the database."""
        state = request.app.state
        return HealthResponse(
            status="ok",
            uptime=round(time.monotonic() - state.started_at, 3),
            timestamp=datetime.now(timezone.utc),
            dependencies={
                "database": "up" if state.db_manager.health_check() else "down",
                "redis": "up" if state.redis_manager.health_check() else "down",
            },
        )

    @app.get("/metrics", include_in_schema=False)
    def metrics():
        """Prometheus metrics endpoint."""
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # ============== Users ==============

    @app.post("/api/users", response_model=UserWithApiKey, status_code=201, tags=["users"])
    def create_user(
        user: UserCreate,
        service: UserService = Depends(get_user_service),
    ):
        """Create a user and return its API key. The key is only shown once."""
        return service.create(user)

    # ============== Tasks ==============

    @app.post(
        "/api/tasks",
        response_model=Task,
        status_code=201,
        tags=["tasks"],
        responses=TASK_ERROR_RESPONSES,
    )
    def create_task(
        task: TaskCreate,
        identity: Identity = Depends(enforce_rate_limit),
        service: TaskService = Depends(get_task_service),
    ):
        """Create a task for the authenticated user."""
        return service.create(identity.user_id, task)

    @app.get("/api/tasks", response_model=PaginatedTasks, tags=["tasks"], responses=TASK_ERROR_RESPONSES)
    def list_tasks(
        page: int | None = Query(default=None, description="Page number, starting at 1"),
        limit: int | None = Query(default=None, description="Page size, at most 100"),
        done: Literal["true", "false"] | None = Query(default=None, description="Filter by status"),
        identity: Identity = Depends(enforce_rate_limit),
        service: TaskService = Depends(get_task_service),
    ):
        """List the authenticated user's tasks, newest first."""
        return service.list_tasks(
            identity.user_id,
            done=None if done is None else done == "true",
            page=page,
            limit=limit,
        )

    @app.put("/api/tasks/{task_id}", response_model=Task, tags=["tasks"], responses=TASK_ERROR_RESPONSES)
    def update_task(
        task_id: str,
        update: TaskUpdate,
        identity: Identity = Depends(enforce_rate_limit),
        service: TaskService = Depends(get_task_service),
    ):
        """Update title, description or status of a task."""
        task = service.update(task_id, identity.user_id, update)
        if not task:
            raise NotFoundError("Task not found or you do not have permission to update it.")
        return task

    @app.delete("/api/tasks/{task_id}", status_code=204, tags=["tasks"], responses=TASK_ERROR_RESPONSES)
    def delete_task(
        task_id: str,
        identity: Identity = Depends(enforce_rate_limit),
        service: TaskService = Depends(get_task_service),
    ):
        """Delete a task."""
        if not service.delete(task_id, identity.user_id):
            raise NotFoundError("Task not found or you do not have permission to delete it.")

    @app.patch(
        "/api/tasks/{task_id}/complete",
        response_model=Task,
        tags=["tasks"],
        responses=TASK_ERROR_RESPONSES,
    )
    def complete_task(
        task_id: str,
        identity: Identity = Depends(enforce_rate_limit),
        service: TaskService = Depends(get_task_service),
    ):
        """Mark a task as done."""
        task = service.complete(task_id, identity.user_id)
        if not task:
            raise NotFoundError("Task not found or you do not have permission to complete it.")
        return task
