import os
from functools import lru_cache

from pydantic import BaseModel, Field

DEFAULT_DATABASE_URL = 'sqlite+aiosqlite:///./prompt_library.db'
DEFAULT_WEB_HOST = 'http://localhost:3000'


def _get_database_url() -> str:
    """Get the SQLAlchemy database URL from the DATABASE_URL environment variable.

    Falls back to a local SQLite file when unset or empty.
    """
    url = os.getenv('DATABASE_URL', '').strip()
    return url if url else DEFAULT_DATABASE_URL


def _get_web_host() -> str:
    """Get the public origin used to build invite links.

    Reads WEB_HOST from environment. A trailing slash is removed so that
    links can be joined with a path directly.
    """
    host = os.getenv('WEB_HOST', '').strip().rstrip('/')
    return host if host else DEFAULT_WEB_HOST


def _get_db_echo() -> bool:
    return os.getenv('DB_ECHO', 'false') == 'true'


def _get_auto_create_tables() -> bool:
    """Create tables on application startup only if AUTO_CREATE_TABLES is 'true'."""
    return os.getenv('AUTO_CREATE_TABLES', 'false') == 'true'


class AppConfig(BaseModel):
    database_url: str = Field(default_factory=_get_database_url)
    web_host: str = Field(default_factory=_get_web_host)
    db_echo: bool = Field(default_factory=_get_db_echo)
    auto_create_tables: bool = Field(default_factory=_get_auto_create_tables)


@lru_cache
def get_app_config() -> AppConfig:
    return AppConfig()
