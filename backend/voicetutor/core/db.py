# voicetutor/core/db.py
"""
Database configuration and initialization module.
Handles Tortoise ORM setup and connection lifecycle for conversation persistence.
"""
from typing import Optional

from tortoise import Tortoise

from ..config import settings

MODEL_MODULES = [
    "voicetutor.models.user",
    "voicetutor.models.conversation",
    "voicetutor.models.message",
]


def tortoise_config(db_url: Optional[str] = None) -> dict:
    """Tortoise ORM configuration dictionary for the given connection URL."""
    return {
        "connections": {"default": db_url or settings.database_url},
        "apps": {
            "models": {
                "models": list(MODEL_MODULES),
                "default_connection": "default",
            },
        },
    }


TORTOISE_ORM = tortoise_config()


async def init_db(db_url: Optional[str] = None, generate_schemas: bool = False) -> None:
    """
    Initialize Tortoise ORM database connection.

    Args:
        db_url: Connection URL; defaults to DATABASE_URL
        generate_schemas: Create missing tables (safe: existing tables are kept)
    """
    await Tortoise.init(config=tortoise_config(db_url))
    if generate_schemas:
        await Tortoise.generate_schemas(safe=True)


async def close_db() -> None:
    """Close all database connections."""
    await Tortoise.close_connections()
