"""
SQLAlchemy model for Organization Invite.
"""

from uuid import uuid4

from sqlalchemy import (
    UUID,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    text,
)
from sqlalchemy.orm import relationship

from prompt_library.storage.base import Base, utc_now


class OrgInvite(Base):  # type: ignore
    """Organization invite link.

    An invite is a reusable, time-limited capability: anyone holding the
    token can join the organization with ``role`` until the invite expires,
    is revoked, or reaches ``max_uses`` redemptions. ``max_uses`` of None
    means unlimited.

    Only ``current_uses`` (incremented by redemptions) and ``is_active``
    (cleared once by revocation) ever change after creation.
    """

    __tablename__ = 'org_invite'

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    org_id = Column(
        UUID(as_uuid=True),
        ForeignKey('org.id', ondelete='CASCADE'),
        nullable=False,
        index=True,
    )
    token = Column(String(64), nullable=False, unique=True, index=True)
    created_by = Column(UUID(as_uuid=True), nullable=False)
    created_at = Column(DateTime, nullable=False, default=utc_now, index=True)
    expires_at = Column(DateTime, nullable=False)
    max_uses = Column(Integer, nullable=True)
    current_uses = Column(Integer, nullable=False, default=0, server_default='0')
    is_active = Column(
        Boolean, nullable=False, default=True, server_default=text('true')
    )
    role = Column(String(20), nullable=False, server_default=text("'member'"))

    # Relationships
    org = relationship('Org')

    __table_args__ = (
        CheckConstraint('current_uses >= 0', name='ck_org_invite_current_uses'),
        CheckConstraint(
            'max_uses IS NULL OR max_uses >= 1', name='ck_org_invite_max_uses'
        ),
        CheckConstraint(
            'max_uses IS NULL OR current_uses <= max_uses',
            name='ck_org_invite_usage_bound',
        ),
    )

    # Role constants
    ROLE_MEMBER = 'member'
    ROLE_ADMIN = 'admin'
    ROLES = (ROLE_MEMBER, ROLE_ADMIN)

    # Derived status constants (never stored)
    STATUS_ACTIVE = 'active'
    STATUS_REVOKED = 'revoked'
    STATUS_EXPIRED = 'expired'
    STATUS_EXHAUSTED = 'exhausted'
