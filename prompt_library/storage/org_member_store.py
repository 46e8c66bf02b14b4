"""
Store class for organization memberships.
"""

from dataclasses import dataclass
from typing import Callable, Optional
from uuid import UUID

from sqlalchemy import and_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from prompt_library.core.logger import prompt_library_logger as logger
from prompt_library.storage.database import a_session_maker
from prompt_library.storage.org_member import OrgMember


@dataclass
class OrgMemberStore:
    """Point lookups and insert-if-absent for organization memberships.

    Memberships are never updated or deleted here.
    """

    session_maker: Callable[..., AsyncSession] = a_session_maker

    async def get_org_member(
        self, org_id: UUID, user_id: UUID
    ) -> Optional[OrgMember]:
        """Get a user's membership in an organization.

        Args:
            org_id: Organization UUID
            user_id: User UUID

        Returns:
            OrgMember or None if the user is not a member
        """
        async with self.session_maker() as session:
            result = await session.execute(
                select(OrgMember).filter(
                    and_(
                        OrgMember.org_id == org_id,
                        OrgMember.user_id == user_id,
                    )
                )
            )
            return result.scalars().first()

    async def add_org_member(self, org_id: UUID, user_id: UUID, role: str) -> bool:
        """Insert a membership unless one already exists.

        A concurrent insert of the same membership resolves through the
        primary key, so the loser sees False rather than an error.

        Args:
            org_id: Organization UUID
            user_id: User UUID
            role: Role to grant

        Returns:
            bool: True if the membership was created, False if it existed
        """
        async with self.session_maker() as session:
            session.add(OrgMember(org_id=org_id, user_id=user_id, role=role))
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                return False

            logger.info(
                'Added organization member',
                extra={'org_id': str(org_id), 'user_id': str(user_id), 'role': role},
            )
            return True
