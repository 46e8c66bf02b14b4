from datetime import UTC, datetime

from sqlalchemy.orm import declarative_base

Base = declarative_base()


def utc_now() -> datetime:
    """Current UTC time without tzinfo.

    Timestamps are stored timezone-naive so that comparisons behave the same
    on SQLite and PostgreSQL.
    """
    return datetime.now(UTC).replace(tzinfo=None)
