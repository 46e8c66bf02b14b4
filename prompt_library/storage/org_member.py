"""
SQLAlchemy model for Organization membership.
"""

from sqlalchemy import UUID, Column, DateTime, ForeignKey, String, text

from prompt_library.storage.base import Base, utc_now


class OrgMember(Base):  # type: ignore
    """A user's membership in an organization.

    The composite primary key ``(org_id, user_id)`` guarantees at most one
    membership per user and organization, which redemption relies on to stay
    idempotent when the same user redeems concurrently.
    """

    __tablename__ = 'org_member'

    org_id = Column(
        UUID(as_uuid=True),
        ForeignKey('org.id', ondelete='CASCADE'),
        primary_key=True,
    )
    user_id = Column(UUID(as_uuid=True), primary_key=True, index=True)
    role = Column(String(20), nullable=False, server_default=text("'member'"))
    created_at = Column(DateTime, nullable=False, default=utc_now)
