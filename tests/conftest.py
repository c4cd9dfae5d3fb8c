"""Pytest fixtures for the task API tests."""

import fnmatch

import pytest
from fastapi.testclient import TestClient
from redis.exceptions import ConnectionError as RedisConnectionError

from task_api.api.app import create_app
from task_api.caching.client import RedisManager
from task_api.caching.task_cache import TaskCache
from task_api.config import Settings
from task_api.database.connection import DatabaseManager
from task_api.middleware.rate_limiter import RateLimiter
from task_api.schemas import UserCreate
from task_api.services.user_service import UserService


class FakeClock:
    """Manually advanced clock returning epoch seconds."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeRedis:
    """In-memory stand-in for the subset of redis.Redis the app uses.

    Expiry follows the injected clock. Setting ``fail`` makes every command
    raise a connection error.
    """

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.fail = False
        self._data: dict[str, object] = {}
        self._expires_at: dict[str, float] = {}

    def _check(self):
        if self.fail:
            raise RedisConnectionError("Connection refused")

    def _alive(self, key: str) -> bool:
        expires_at = self._expires_at.get(key)
        if expires_at is not None and self.clock() >= expires_at:
            self._data.pop(key, None)
            self._expires_at.pop(key, None)
        return key in self._data

    def ping(self):
        self._check()
        return True

    def close(self):
        pass

    def get(self, key):
        self._check()
        return self._data.get(key) if self._alive(key) else None

    def setex(self, key, ttl, value):
        self._check()
        self._data[key] = value
        self._expires_at[key] = self.clock() + ttl
        return True

    def delete(self, *keys):
        self._check()
        deleted = 0
        for key in keys:
            if self._alive(key):
                del self._data[key]
                self._expires_at.pop(key, None)
                deleted += 1
        return deleted

    def scan_iter(self, match=None, count=None):
        self._check()
        for key in list(self._data):
            if self._alive(key) and (match is None or fnmatch.fnmatchcase(key, match)):
                yield key

    def live_keys(self):
        return [k for k in list(self._data) if self._alive(k)]

    def ttl(self, key):
        if not self._alive(key):
            return -2
        expires_at = self._expires_at.get(key)
        return -1 if expires_at is None else int(expires_at - self.clock())

    def zremrangebyscore(self, key, min_score, max_score):
        self._check()
        if not self._alive(key):
            return 0

        def bound(value):
            text = str(value)
            if text.startswith("("):
                return float(text[1:]), True
            return float(text), False

        low, low_excl = bound(min_score)
        high, high_excl = bound(max_score)
        zset = self._data[key]
        doomed = [
            member
            for member, score in zset.items()
            if (score > low if low_excl else score >= low)
            and (score < high if high_excl else score <= high)
        ]
        for member in doomed:
            del zset[member]
        return len(doomed)

    def zadd(self, key, mapping):
        self._check()
        if not self._alive(key):
            self._data[key] = {}
        zset = self._data[key]
        added = sum(1 for member in mapping if member not in zset)
        zset.update({member: float(score) for member, score in mapping.items()})
        return added

    def zcard(self, key):
        self._check()
        return len(self._data[key]) if self._alive(key) else 0

    def expire(self, key, seconds):
        self._check()
        if not self._alive(key):
            return False
        self._expires_at[key] = self.clock() + seconds
        return True

    def pipeline(self, transaction=True):
        return FakePipeline(self)


class FakePipeline:
    """Queues commands and runs them back to back on execute()."""

    def __init__(self, redis: FakeRedis):
        self._redis = redis
        self._commands = []

    def __getattr__(self, name):
        command = getattr(self._redis, name)

        def queue(*args, **kwargs):
            self._commands.append((command, args, kwargs))
            return self

        return queue

    def execute(self):
        self._redis._check()
        commands, self._commands = self._commands, []
        return [command(*args, **kwargs) for command, args, kwargs in commands]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_redis(clock):
    return FakeRedis(clock)


@pytest.fixture
def redis_manager(fake_redis):
    return RedisManager(client=fake_redis)


@pytest.fixture
def task_cache(fake_redis):
    return TaskCache(fake_redis, ttl=60)


@pytest.fixture
def rate_limiter(fake_redis, clock):
    return RateLimiter(fake_redis, max_requests=100, window_seconds=60, clock=clock)


@pytest.fixture
def db_manager(tmp_path):
    manager = DatabaseManager(f"sqlite:///{tmp_path / 'test.db'}")
    manager.create_tables()
    yield manager
    manager.dispose()


@pytest.fixture
def db_session(db_manager):
    session = db_manager.SessionLocal()
    yield session
    session.close()


@pytest.fixture
def settings():
    """Create test settings."""
    return Settings(
        app_env="development",
        debug=False,
        rate_limit_enabled=True,
        rate_limit_max=5,
        rate_limit_window=60,
        cache_ttl=60,
    )


@pytest.fixture
def app(settings, redis_manager, db_manager):
    return create_app(settings, redis_manager=redis_manager, db_manager=db_manager)


@pytest.fixture
def client(app, settings, fake_redis, clock):
    """Create a test client whose rate limiter follows the fake clock."""
    with TestClient(app) as client:
        app.state.rate_limiter = RateLimiter(
            fake_redis,
            max_requests=settings.rate_limit_max,
            window_seconds=settings.rate_limit_window,
            clock=clock,
        )
        yield client


@pytest.fixture
def user(db_manager):
    """Create a user and return it with its API key."""
    session = db_manager.SessionLocal()
    try:
        return UserService(session).create(UserCreate(name="Ada Lovelace"))
    finally:
        session.close()


@pytest.fixture
def auth_headers(user):
    return {"x-api-key": user.api_key}
