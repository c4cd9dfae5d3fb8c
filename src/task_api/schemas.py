"""Pydantic schemas for API request/response validation."""

from datetime import datetime

from pydantic import BaseModel, Field

# ============== Task Schemas ==============


class TaskCreate(BaseModel):
    """Schema for creating a new task."""

    model_config = {"str_strip_whitespace": True}

    title: str = Field(..., min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=1000)


class TaskUpdate(BaseModel):
    """Schema for updating a task. Only provided fields are applied."""

    model_config = {"str_strip_whitespace": True}

    title: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=1000)
    done: bool | None = None


class Task(BaseModel):
    """Schema for task response."""

    id: str
    user_id: str
    title: str
    description: str | None = None
    done: bool = False
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class PaginationMeta(BaseModel):
    """Pagination metadata for listings."""

    page: int
    limit: int
    total: int
    total_pages: int
    has_next_page: bool
    has_prev_page: bool


class PaginatedTasks(BaseModel):
    """Schema for a page of tasks."""

    data: list[Task]
    meta: PaginationMeta


# ============== User Schemas ==============


class UserCreate(BaseModel):
    """Schema for creating a new user."""

    model_config = {"str_strip_whitespace": True}

    name: str = Field(..., min_length=1, max_length=200)


class User(BaseModel):
    """Schema for user response."""

    id: str
    user_id: str
    name: str
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class UserWithApiKey(User):
    """Schema returned once at user creation, carrying the plain API key."""

    api_key: str


# ============== Health & Error Schemas ==============


class HealthResponse(BaseModel):
    """Schema for health check response."""

    status: str
    uptime: float
    timestamp: datetime
    dependencies: dict[str, str]


class ErrorResponse(BaseModel):
    """Schema for error responses."""

    error: str
    message: str


class RateLimitErrorResponse(ErrorResponse):
    """Schema for rate limit denials."""

    retryAfter: int
