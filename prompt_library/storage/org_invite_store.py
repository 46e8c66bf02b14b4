"""
Store class for managing organization invites and their redemptions.
"""

import secrets
import string
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Optional
from uuid import UUID

from sqlalchemy import and_, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from prompt_library.core.logger import prompt_library_logger as logger
from prompt_library.storage.base import utc_now
from prompt_library.storage.database import a_session_maker
from prompt_library.storage.org_invite import OrgInvite
from prompt_library.storage.org_invite_redemption import OrgInviteRedemption
from prompt_library.storage.org_member import OrgMember

# Invite token configuration
INVITE_TOKEN_BYTES = 32  # 256 bits, encodes to 43 url-safe characters
INVITE_TOKEN_MAX_LENGTH = 64
INVITE_TOKEN_ALPHABET = frozenset(string.ascii_letters + string.digits + '-_')
TOKEN_INSERT_ATTEMPTS = 3

DEFAULT_EXPIRATION_DAYS = 7
MIN_EXPIRATION_DAYS = 1
MAX_EXPIRATION_DAYS = 365


class InviteClaimResult(str, Enum):
    """Outcome of an attempt to consume one use of an invite."""

    CLAIMED = 'claimed'
    NO_CAPACITY = 'no_capacity'
    ALREADY_MEMBER = 'already_member'


class InviteTokenAllocationError(RuntimeError):
    """Raised when no unique token could be inserted."""


@dataclass
class OrgInviteStore:
    """Store for managing organization invites."""

    session_maker: Callable[..., AsyncSession] = a_session_maker

    @staticmethod
    def generate_token(nbytes: int = INVITE_TOKEN_BYTES) -> str:
        """Generate a secure invite token.

        Draws from the operating system CSPRNG. Failures of the entropy
        source propagate; there is no weaker fallback.

        Args:
            nbytes: Number of random bytes before base64url encoding

        Returns:
            str: URL-safe token without padding
        """
        return secrets.token_urlsafe(nbytes)

    @staticmethod
    def is_token_well_formed(token: object) -> bool:
        """Check a caller-supplied token before it reaches the database."""
        if not isinstance(token, str) or not token.strip():
            return False
        if len(token) > INVITE_TOKEN_MAX_LENGTH:
            return False
        return all(char in INVITE_TOKEN_ALPHABET for char in token)

    @staticmethod
    def is_invite_expired(invite: OrgInvite, now: datetime | None = None) -> bool:
        """Check if an invite has passed its expiration time."""
        return invite.expires_at < (now or utc_now())

    @staticmethod
    def is_invite_exhausted(invite: OrgInvite) -> bool:
        """Check if a usage-limited invite has no uses left."""
        return invite.max_uses is not None and invite.current_uses >= invite.max_uses

    async def create_invite(
        self,
        org_id: UUID,
        created_by: UUID,
        expires_in_days: int,
        role: str,
        max_uses: int | None = None,
    ) -> OrgInvite:
        """Create a new organization invite.

        A fresh token is drawn for every attempt; a unique-constraint
        violation on the token is retried up to TOKEN_INSERT_ATTEMPTS times.

        Args:
            org_id: Organization UUID
            created_by: User ID of the administrator creating the invite
            expires_in_days: Days until the invite expires
            role: Role granted on redemption
            max_uses: Maximum number of redemptions, None for unlimited

        Returns:
            OrgInvite: The created invite record

        Raises:
            InviteTokenAllocationError: If every insert attempt collided
        """
        for attempt in range(1, TOKEN_INSERT_ATTEMPTS + 1):
            now = utc_now()
            invite = OrgInvite(
                org_id=org_id,
                token=self.generate_token(),
                created_by=created_by,
                created_at=now,
                expires_at=now + timedelta(days=expires_in_days),
                max_uses=max_uses,
                current_uses=0,
                is_active=True,
                role=role,
            )
            async with self.session_maker() as session:
                session.add(invite)
                try:
                    await session.commit()
                except IntegrityError:
                    await session.rollback()
                    logger.warning(
                        'Invite insert rejected, retrying with a new token',
                        extra={'org_id': str(org_id), 'attempt': attempt},
                    )
                    continue

            logger.info(
                'Created organization invite',
                extra={
                    'invite_id': str(invite.id),
                    'org_id': str(org_id),
                    'created_by': str(created_by),
                    'role': role,
                    'max_uses': max_uses,
                    'expires_at': invite.expires_at.isoformat(),
                },
            )
            return invite

        raise InviteTokenAllocationError(
            f'Could not insert invite for organization {org_id}'
        )

    async def get_invite_by_token(self, token: str) -> Optional[OrgInvite]:
        """Get an invite, with its organization loaded, by its token.

        Args:
            token: The invite token

        Returns:
            OrgInvite or None if not found
        """
        async with self.session_maker() as session:
            result = await session.execute(
                select(OrgInvite)
                .options(joinedload(OrgInvite.org))
                .filter(OrgInvite.token == token)
            )
            return result.scalars().first()

    async def get_invite_by_id(
        self, invite_id: UUID, org_id: UUID | None = None
    ) -> Optional[OrgInvite]:
        """Get an invite by its ID, optionally scoped to an organization.

        Args:
            invite_id: The invite ID
            org_id: If given, invites of other organizations are not returned

        Returns:
            OrgInvite or None if not found
        """
        async with self.session_maker() as session:
            query = select(OrgInvite).filter(OrgInvite.id == invite_id)
            if org_id is not None:
                query = query.filter(OrgInvite.org_id == org_id)
            result = await session.execute(query)
            return result.scalars().first()

    async def list_invites_for_org(self, org_id: UUID) -> list[OrgInvite]:
        """List all invites of an organization, newest first."""
        async with self.session_maker() as session:
            result = await session.execute(
                select(OrgInvite)
                .filter(OrgInvite.org_id == org_id)
                .order_by(OrgInvite.created_at.desc())
            )
            return list(result.scalars().all())

    async def deactivate_invite(
        self, invite_id: UUID, org_id: UUID | None = None
    ) -> bool:
        """Mark an invite as inactive.

        Deactivating an already inactive invite matches the row again and
        succeeds.

        Args:
            invite_id: The invite ID
            org_id: If given, only an invite of this organization is touched

        Returns:
            bool: True if a matching invite exists, False otherwise
        """
        conditions = [OrgInvite.id == invite_id]
        if org_id is not None:
            conditions.append(OrgInvite.org_id == org_id)

        async with self.session_maker() as session:
            result = await session.execute(
                update(OrgInvite)
                .where(and_(*conditions))
                .values(is_active=False)
                .execution_options(synchronize_session=False)
            )
            await session.commit()

        if result.rowcount == 0:
            return False

        logger.info('Deactivated invite', extra={'invite_id': str(invite_id)})
        return True

    async def claim_invite_use(
        self,
        invite_id: UUID,
        org_id: UUID,
        user_id: UUID,
        role: str,
        was_new_user: bool,
    ) -> InviteClaimResult:
        """Consume one use of an invite and grant the membership it carries.

        Runs as one transaction, in this order:
        1. Increment current_uses only if the invite is active and has
           headroom. This single conditional UPDATE is what serializes
           concurrent redemptions of the same invite.
        2. Insert the membership. A primary-key conflict means the user joined
           concurrently, and the increment is rolled back with it.
        3. Insert the redemption record.

        Args:
            invite_id: The invite being redeemed
            org_id: Organization the invite belongs to
            user_id: The redeeming user
            role: Role granted by the invite
            was_new_user: Whether the account was created in this flow

        Returns:
            InviteClaimResult: CLAIMED, NO_CAPACITY or ALREADY_MEMBER
        """
        async with self.session_maker() as session:
            try:
                result = await session.execute(
                    update(OrgInvite)
                    .where(
                        and_(
                            OrgInvite.id == invite_id,
                            OrgInvite.is_active.is_(True),
                            or_(
                                OrgInvite.max_uses.is_(None),
                                OrgInvite.current_uses < OrgInvite.max_uses,
                            ),
                        )
                    )
                    .values(current_uses=OrgInvite.current_uses + 1)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    await session.rollback()
                    return InviteClaimResult.NO_CAPACITY

                session.add(OrgMember(org_id=org_id, user_id=user_id, role=role))
                await session.flush()

                session.add(
                    OrgInviteRedemption(
                        invite_id=invite_id,
                        user_id=user_id,
                        redeemed_at=utc_now(),
                        was_new_user=was_new_user,
                    )
                )
                await session.commit()
            except IntegrityError:
                await session.rollback()
                # Only a concurrent membership for this user counts as a repeat;
                # any other constraint failure propagates.
                existing = await session.execute(
                    select(OrgMember.user_id).filter(
                        and_(OrgMember.org_id == org_id, OrgMember.user_id == user_id)
                    )
                )
                if existing.first() is None:
                    raise
                logger.info(
                    'Membership already present, invite use released',
                    extra={'invite_id': str(invite_id), 'user_id': str(user_id)},
                )
                return InviteClaimResult.ALREADY_MEMBER
            except Exception:
                await session.rollback()
                raise

        logger.info(
            'Claimed invite use',
            extra={
                'invite_id': str(invite_id),
                'org_id': str(org_id),
                'user_id': str(user_id),
                'was_new_user': was_new_user,
            },
        )
        return InviteClaimResult.CLAIMED

    async def get_redemptions(self, invite_id: UUID) -> list[OrgInviteRedemption]:
        """List the redemptions of an invite, most recent first."""
        async with self.session_maker() as session:
            result = await session.execute(
                select(OrgInviteRedemption)
                .filter(OrgInviteRedemption.invite_id == invite_id)
                .order_by(OrgInviteRedemption.redeemed_at.desc())
            )
            return list(result.scalars().all())
