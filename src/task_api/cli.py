"""Command-line interface for the task API."""

import argparse
import sys

import uvicorn
from sqlalchemy import delete

from task_api.config import get_settings

SEED_ACCOUNTS = [
    {
        "key": "8b4fae2b91c44b6d9d2e1b0d97e3a4d1",
        "user_id": "7c1cc1d7-34c2-4f0e-9c2f-3fdab0e2f241",
        "name": "Aurora Labs",
    },
    {
        "key": "e8c15e9917c64df3afeafbb56b32c987",
        "user_id": "4a97fb23-36c4-4642-84fa-cb11020b7ee8",
        "name": "Vertex Cloud",
    },
    {
        "key": "ab77efac9320467bb84c64af0e0e7951",
        "user_id": "f5e95e71-d683-48ea-a3c8-296cdcb22cc1",
        "name": "Quantum API",
    },
]


def seed_database(db_manager) -> dict[str, int]:
    """Replace users, API keys and tasks with the demo accounts."""
    from task_api.database.models import ApiKeyModel, TaskModel, UserModel

    with db_manager.get_session() as session:
        for model in (TaskModel, ApiKeyModel, UserModel):
            session.execute(delete(model))

        for index, account in enumerate(SEED_ACCOUNTS, start=1):
            session.add(UserModel(user_id=account["user_id"], name=account["name"]))
            session.add(ApiKeyModel(user_id=account["user_id"], key=account["key"]))
            session.add(
                TaskModel(
                    user_id=account["user_id"],
                    title=f"Task {index} for {account['name']}",
                    description=f"This is a sample task for {account['name']}.",
                )
            )

    count = len(SEED_ACCOUNTS)
    return {"users": count, "api_keys": count, "tasks": count}


def seed():
    """Populate the database with demo users, API keys and tasks."""
    parser = argparse.ArgumentParser(description="Seed the task API database")
    parser.add_argument(
        "--database-url",
        type=str,
        default=None,
        help="Database URL (defaults to DATABASE_URL)",
    )
    args = parser.parse_args(sys.argv[2:])

    from task_api.database.connection import DatabaseManager

    settings = get_settings()
    if args.database_url:
        settings = settings.model_copy(update={"database_url": args.database_url})
    db_manager = DatabaseManager.from_settings(settings)

    try:
        db_manager.create_tables()
        result = seed_database(db_manager)
    except Exception as e:
        print(f"Seeding failed: {e}", file=sys.stderr)
        sys.exit(1)
    finally:
        db_manager.dispose()

    print(f"Seeded {result['users']} users, {result['api_keys']} API keys, {result['tasks']} tasks")
    for account in SEED_ACCOUNTS:
        print(f"  {account['name']}: {account['key']}")


def serve():
    """Start the API server."""
    parser = argparse.ArgumentParser(description="Start the task API server")
    parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="Host to bind to",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port to bind to",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Number of worker processes",
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        help="Enable auto-reload for development",
    )

    args = parser.parse_args(sys.argv[2:])

    settings = get_settings()

    host = args.host or settings.host
    port = args.port or settings.port
    workers = args.workers or settings.workers

    print(f"Starting task API server on {host}:{port}")

    uvicorn.run(
        "task_api.api.app:create_app",
        factory=True,
        host=host,
        port=port,
        workers=1 if args.reload else workers,
        reload=args.reload,
        log_level=settings.log_level.lower(),
    )


COMMANDS = {"serve": serve, "seed": seed}


def main():
    """Dispatch ``task-api <command>``."""
    if len(sys.argv) < 2 or sys.argv[1] not in COMMANDS:
        print(f"usage: task-api {{{','.join(COMMANDS)}}} [options]", file=sys.stderr)
        sys.exit(2)
    COMMANDS[sys.argv[1]]()


if __name__ == "__main__":
    main()
