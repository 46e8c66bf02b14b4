"""
SQLAlchemy model for Organization.
"""

from uuid import uuid4

from sqlalchemy import UUID, Column, DateTime, String

from prompt_library.storage.base import Base, utc_now


class Org(Base):  # type: ignore
    """An organization that owns a prompt library and its invite links."""

    __tablename__ = 'org'

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    slug = Column(String(255), nullable=False, unique=True, index=True)
    name = Column(String(255), nullable=False)
    created_at = Column(DateTime, nullable=False, default=utc_now)
