"""Service for invite usage statistics."""

from dataclasses import dataclass, field
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError

from prompt_library.core.logger import prompt_library_logger as logger
from prompt_library.server.routes.org_invite_models import (
    InviteInternalError,
    InviteStats,
    InviteUser,
)
from prompt_library.storage.org_invite_store import OrgInviteStore


@dataclass
class InviteStatsService:
    invite_store: OrgInviteStore = field(default_factory=OrgInviteStore)

    async def get_invite_stats(
        self, invite_id: UUID, org_id: UUID | None = None
    ) -> InviteStats | None:
        """Summarize who joined through an invite.

        Totals are counted from redemption records. Existing members who
        re-open an invite leave no record, so they are not counted.

        Args:
            invite_id: The invite ID
            org_id: If given, the invite must belong to this organization

        Returns:
            InviteStats, or None if no matching invite exists

        Raises:
            InviteInternalError: If the statistics could not be read
        """
        try:
            invite = await self.invite_store.get_invite_by_id(invite_id, org_id)
            if not invite:
                return None
            redemptions = await self.invite_store.get_redemptions(invite_id)
        except SQLAlchemyError as e:
            logger.exception(
                'Failed to read invite statistics',
                extra={'invite_id': str(invite_id), 'error': str(e)},
            )
            raise InviteInternalError() from e

        new_users = sum(1 for r in redemptions if r.was_new_user)
        remaining_uses = (
            max(invite.max_uses - invite.current_uses, 0)
            if invite.max_uses is not None
            else None
        )
        return InviteStats(
            total_redemptions=len(redemptions),
            new_users=new_users,
            existing_users=len(redemptions) - new_users,
            remaining_uses=remaining_uses,
            users=[
                InviteUser(
                    user_id=r.user_id,
                    joined_at=r.redeemed_at,
                    was_new_user=r.was_new_user,
                )
                for r in redemptions
            ],
        )
