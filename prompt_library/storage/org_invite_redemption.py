"""SQLAlchemy model for recording invite redemptions."""

from uuid import uuid4

from sqlalchemy import UUID, Boolean, Column, DateTime, ForeignKey

from prompt_library.storage.base import Base, utc_now


class OrgInviteRedemption(Base):  # type: ignore
    """One successful redemption of an invite. Rows are never updated."""

    __tablename__ = 'org_invite_redemption'

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    invite_id = Column(
        UUID(as_uuid=True),
        ForeignKey('org_invite.id', ondelete='CASCADE'),
        nullable=False,
        index=True,
    )
    user_id = Column(UUID(as_uuid=True), nullable=False)
    redeemed_at = Column(DateTime, nullable=False, default=utc_now)
    was_new_user = Column(Boolean, nullable=False, default=False)
