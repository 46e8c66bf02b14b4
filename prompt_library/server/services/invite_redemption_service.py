"""Service for redeeming organization invites into memberships."""

from dataclasses import dataclass, field
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError

from prompt_library.core.logger import prompt_library_logger as logger
from prompt_library.server.routes.org_invite_models import (
    InviteError,
    InviteInternalError,
    InviteMaxUsesError,
    InviteNotFoundError,
    InviteRedemptionResponse,
    InviteRevokedError,
    InviteUnauthorizedError,
    OrganizationSummary,
)
from prompt_library.server.services.audit_service import (
    AuditOperation,
    AuditOutcome,
    record_audit_event,
)
from prompt_library.server.services.org_invite_service import OrgInviteService
from prompt_library.storage.org_invite import OrgInvite
from prompt_library.storage.org_invite_store import InviteClaimResult
from prompt_library.storage.org_member_store import OrgMemberStore


def _parse_user_id(user_id: UUID | str | None) -> UUID:
    if isinstance(user_id, UUID):
        return user_id
    if not user_id:
        raise InviteUnauthorizedError()
    try:
        return UUID(str(user_id))
    except ValueError:
        raise InviteUnauthorizedError()


@dataclass
class InviteRedemptionService:
    """Turns a valid invite token plus a user identity into a membership."""

    invite_service: OrgInviteService = field(default_factory=OrgInviteService)
    member_store: OrgMemberStore = field(default_factory=OrgMemberStore)

    async def redeem_invite(
        self,
        token: str | None,
        user_id: UUID | str | None,
        was_new_user: bool = False,
    ) -> InviteRedemptionResponse:
        """Redeem an invite for a user.

        This method:
        1. Requires a user identity
        2. Validates the invite exactly as validate_invite does
        3. Returns early if the user is already a member (no writes)
        4. Claims one use of the invite, then inserts the membership and the
           redemption record, all in one transaction with the claim first
        5. Classifies a lost claim (a concurrent redemption took the last
           use, or the invite was revoked in between)

        Args:
            token: The invite token
            user_id: The authenticated user redeeming the invite
            was_new_user: Whether the account was created as part of this flow

        Returns:
            InviteRedemptionResponse: success with already_member and the
            organization summary

        Raises:
            InviteUnauthorizedError: If no valid user identity was given
            InvalidInviteTokenError: If the token is empty or malformed
            InviteNotFoundError: If no invite has this token
            InviteRevokedError: If the invite was revoked
            InviteExpiredError: If the invite has expired
            InviteMaxUsesError: If the invite has no uses left, including when
                a concurrent redemption took the last one
            InviteInternalError: If the store failed
        """
        invite: OrgInvite | None = None
        audit_user_id = user_id
        try:
            user_uuid = _parse_user_id(user_id)
            audit_user_id = user_uuid
            invite = await self.invite_service.find_invite(token)
            self.invite_service.check_invite_redeemable(invite)
            result = await self._redeem_valid_invite(invite, user_uuid, was_new_user)
        except InviteError as e:
            logger.info(
                'Invite redemption rejected',
                extra={
                    'invite_id': str(invite.id) if invite else None,
                    'user_id': str(audit_user_id) if audit_user_id else None,
                    'error_code': e.code.value,
                },
            )
            self._audit(invite, audit_user_id, AuditOutcome.FAILURE, e.code.value)
            raise

        self._audit(
            invite,
            user_uuid,
            AuditOutcome.SUCCESS,
            'already_member' if result.already_member else None,
        )
        return result

    async def _redeem_valid_invite(
        self, invite: OrgInvite, user_id: UUID, was_new_user: bool
    ) -> InviteRedemptionResponse:
        organization = OrganizationSummary.from_org(invite.org)

        try:
            existing_member = await self.member_store.get_org_member(
                invite.org_id, user_id
            )
        except SQLAlchemyError as e:
            logger.exception(
                'Failed to check organization membership',
                extra={'invite_id': str(invite.id), 'error': str(e)},
            )
            raise InviteInternalError() from e

        if existing_member:
            logger.info(
                'Invite redeemed by existing member',
                extra={'invite_id': str(invite.id), 'user_id': str(user_id)},
            )
            return InviteRedemptionResponse(
                already_member=True, organization=organization
            )

        try:
            claim = await self.invite_service.invite_store.claim_invite_use(
                invite_id=invite.id,
                org_id=invite.org_id,
                user_id=user_id,
                role=invite.role,
                was_new_user=was_new_user,
            )
        except SQLAlchemyError as e:
            logger.exception(
                'Failed to redeem invite',
                extra={
                    'invite_id': str(invite.id),
                    'user_id': str(user_id),
                    'error': str(e),
                },
            )
            raise InviteInternalError() from e

        if claim == InviteClaimResult.NO_CAPACITY:
            raise await self._classify_lost_claim(invite)

        already_member = claim == InviteClaimResult.ALREADY_MEMBER
        logger.info(
            'Organization invite redeemed',
            extra={
                'invite_id': str(invite.id),
                'user_id': str(user_id),
                'org_id': str(invite.org_id),
                'role': invite.role,
                'already_member': already_member,
            },
        )
        return InviteRedemptionResponse(
            already_member=already_member, organization=organization
        )

    async def _classify_lost_claim(self, invite: OrgInvite) -> InviteError:
        """Explain why the conditional increment matched no row.

        The invite passed validation moments earlier, so either it was revoked
        or its last use went to a concurrent redemption in between.
        """
        try:
            current = await self.invite_service.invite_store.get_invite_by_id(
                invite.id
            )
        except SQLAlchemyError as e:
            logger.warning(
                'Could not re-read invite after lost claim',
                extra={'invite_id': str(invite.id), 'error': str(e)},
            )
            return InviteMaxUsesError()

        if current is None:
            return InviteNotFoundError()
        if not current.is_active:
            return InviteRevokedError()
        return InviteMaxUsesError()

    def _audit(
        self,
        invite: OrgInvite | None,
        user_id: object,
        outcome: AuditOutcome,
        reason: str | None,
    ) -> None:
        record_audit_event(
            self.invite_service.audit_sink,
            AuditOperation.REDEEM,
            outcome,
            actor_id=user_id,
            organization_id=invite.org_id if invite else None,
            target_id=invite.id if invite else None,
            reason=reason,
        )
