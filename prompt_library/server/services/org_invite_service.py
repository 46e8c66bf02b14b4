"""Service for creating, validating, listing and revoking organization invites."""

from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError

from prompt_library.core.config import get_app_config
from prompt_library.core.logger import prompt_library_logger as logger
from prompt_library.server.routes.org_invite_models import (
    InvalidInviteTokenError,
    InviteCreateError,
    InviteError,
    InviteExpiredError,
    InviteInternalError,
    InviteMaxUsesError,
    InviteNotFoundError,
    InviteOrgNotFoundError,
    InviteResponse,
    InviteRevokedError,
    InviteRevokeError,
    InviteValidationError,
    InviteValidationResponse,
)
from prompt_library.server.services.audit_service import (
    AuditOperation,
    AuditOutcome,
    AuditSink,
    LoggingAuditSink,
    record_audit_event,
)
from prompt_library.storage.org_invite import OrgInvite
from prompt_library.storage.org_invite_store import (
    MAX_EXPIRATION_DAYS,
    MIN_EXPIRATION_DAYS,
    InviteTokenAllocationError,
    OrgInviteStore,
)
from prompt_library.storage.org_store import OrgStore


def _get_web_host() -> str:
    return get_app_config().web_host


@dataclass
class OrgInviteService:
    """Service for the invite lifecycle."""

    invite_store: OrgInviteStore = field(default_factory=OrgInviteStore)
    org_store: OrgStore = field(default_factory=OrgStore)
    audit_sink: AuditSink = field(default_factory=LoggingAuditSink)
    web_host: str = field(default_factory=_get_web_host)

    @staticmethod
    def validate_invite_params(
        expires_in_days: object, max_uses: object, role: object
    ) -> None:
        """Check invite parameters before anything is written.

        Raises:
            InviteValidationError: If any parameter is out of range
        """
        if (
            isinstance(expires_in_days, bool)
            or not isinstance(expires_in_days, int)
            or not MIN_EXPIRATION_DAYS <= expires_in_days <= MAX_EXPIRATION_DAYS
        ):
            raise InviteValidationError(
                f'expires_in_days must be between {MIN_EXPIRATION_DAYS} '
                f'and {MAX_EXPIRATION_DAYS}'
            )
        if max_uses is not None and (
            isinstance(max_uses, bool) or not isinstance(max_uses, int) or max_uses < 1
        ):
            raise InviteValidationError('max_uses must be a positive integer')
        if role not in OrgInvite.ROLES:
            raise InviteValidationError(
                f'role must be one of: {", ".join(OrgInvite.ROLES)}'
            )

    @staticmethod
    def get_invite_status(invite: OrgInvite, now: datetime | None = None) -> str:
        """Derive the status of an invite.

        Revocation wins over expiry, and expiry wins over exhaustion, matching
        the order in which validation reports problems.
        """
        if not invite.is_active:
            return OrgInvite.STATUS_REVOKED
        if OrgInviteStore.is_invite_expired(invite, now):
            return OrgInvite.STATUS_EXPIRED
        if OrgInviteStore.is_invite_exhausted(invite):
            return OrgInvite.STATUS_EXHAUSTED
        return OrgInvite.STATUS_ACTIVE

    def build_invite_url(self, token: str, origin: str | None = None) -> str:
        """Build the redemption link ``<origin>/invites/<token>``."""
        base = (origin or self.web_host).rstrip('/')
        return f'{base}/invites/{token}'

    def to_response(
        self, invite: OrgInvite, origin: str | None = None
    ) -> InviteResponse:
        return InviteResponse.from_invite(
            invite,
            invite_url=self.build_invite_url(invite.token, origin),
            status=self.get_invite_status(invite),
        )

    async def create_invite(
        self,
        org_id: UUID,
        created_by: UUID,
        expires_in_days: int,
        max_uses: int | None = None,
        role: str = OrgInvite.ROLE_MEMBER,
    ) -> OrgInvite:
        """Create a new organization invite.

        This method:
        1. Validates expiry range, usage limit and role
        2. Validates the organization exists
        3. Inserts the invite with a fresh token
        4. Records the outcome in the audit trail

        Args:
            org_id: Organization UUID
            created_by: User ID of the administrator creating the invite
            expires_in_days: Days until the invite expires (1-365)
            max_uses: Maximum number of redemptions, None for unlimited
            role: Role to grant on redemption (member, admin)

        Returns:
            OrgInvite: The created invite, including its token

        Raises:
            InviteValidationError: If parameters are out of range
            InviteOrgNotFoundError: If the organization does not exist
            InviteCreateError: If the invite could not be stored
        """
        logger.info(
            'Creating organization invite',
            extra={
                'org_id': str(org_id),
                'created_by': str(created_by),
                'expires_in_days': expires_in_days,
                'max_uses': max_uses,
                'role': role,
            },
        )

        try:
            self.validate_invite_params(expires_in_days, max_uses, role)

            try:
                org = await self.org_store.get_org_by_id(org_id)
                if not org:
                    raise InviteOrgNotFoundError()

                invite = await self.invite_store.create_invite(
                    org_id=org_id,
                    created_by=created_by,
                    expires_in_days=expires_in_days,
                    role=role,
                    max_uses=max_uses,
                )
            except (SQLAlchemyError, InviteTokenAllocationError) as e:
                logger.exception(
                    'Failed to store organization invite',
                    extra={'org_id': str(org_id), 'error': str(e)},
                )
                raise InviteCreateError() from e
        except InviteError as e:
            record_audit_event(
                self.audit_sink,
                AuditOperation.CREATE,
                AuditOutcome.FAILURE,
                actor_id=created_by,
                organization_id=org_id,
                reason=e.code.value,
            )
            raise

        record_audit_event(
            self.audit_sink,
            AuditOperation.CREATE,
            AuditOutcome.SUCCESS,
            actor_id=created_by,
            organization_id=org_id,
            target_id=invite.id,
        )
        return invite

    async def find_invite(self, token: str | None) -> OrgInvite:
        """Look up an invite by token without judging whether it is usable.

        Raises:
            InvalidInviteTokenError: If the token is empty or malformed
            InviteNotFoundError: If no invite has this token
            InviteInternalError: If the lookup failed
        """
        if not OrgInviteStore.is_token_well_formed(token):
            raise InvalidInviteTokenError()

        try:
            invite = await self.invite_store.get_invite_by_token(token)
        except SQLAlchemyError as e:
            logger.exception('Failed to look up invite', extra={'error': str(e)})
            raise InviteInternalError() from e

        if not invite:
            raise InviteNotFoundError()
        return invite

    @staticmethod
    def check_invite_redeemable(invite: OrgInvite) -> None:
        """Raise the first reason a found invite cannot be redeemed.

        Revocation is reported before expiry, and expiry before exhaustion.
        """
        if not invite.is_active:
            raise InviteRevokedError()
        if OrgInviteStore.is_invite_expired(invite):
            raise InviteExpiredError()
        if OrgInviteStore.is_invite_exhausted(invite):
            raise InviteMaxUsesError()
        if not invite.org:
            raise InviteOrgNotFoundError()

    async def get_valid_invite(self, token: str | None) -> OrgInvite:
        """Look up an invite by token and check it can still be redeemed.

        Checks run in a fixed order so the most specific reason is reported:
        token format, existence, revocation, expiry, remaining uses, and
        finally the organization.

        Args:
            token: The invite token

        Returns:
            OrgInvite: The invite with its organization loaded

        Raises:
            InvalidInviteTokenError: If the token is empty or malformed
            InviteNotFoundError: If no invite has this token
            InviteRevokedError: If the invite was revoked
            InviteExpiredError: If the invite has expired
            InviteMaxUsesError: If the invite has no uses left
            InviteOrgNotFoundError: If the organization no longer exists
            InviteInternalError: If the lookup failed
        """
        invite = await self.find_invite(token)
        self.check_invite_redeemable(invite)
        return invite

    async def validate_invite(self, token: str | None) -> InviteValidationResponse:
        """Validate an invite token for display to a prospective member.

        Never writes. Rejections are returned as ``valid=False`` with an
        error code; only storage failures raise.

        Raises:
            InviteInternalError: If the lookup failed
        """
        try:
            invite = await self.get_valid_invite(token)
        except InviteInternalError:
            raise
        except InviteError as e:
            logger.info('Invite rejected', extra={'error_code': e.code.value})
            return InviteValidationResponse.from_error(e)

        return InviteValidationResponse.from_invite(invite)

    async def revoke_invite(
        self,
        invite_id: UUID,
        actor_id: UUID,
        org_id: UUID | None = None,
    ) -> None:
        """Revoke an invite. Revoking twice is not an error.

        Args:
            invite_id: The invite to revoke
            actor_id: The administrator revoking it
            org_id: If given, the invite must belong to this organization

        Raises:
            InviteNotFoundError: If no matching invite exists
            InviteRevokeError: If the update could not be stored
        """
        try:
            try:
                found = await self.invite_store.deactivate_invite(invite_id, org_id)
            except SQLAlchemyError as e:
                logger.exception(
                    'Failed to revoke invite',
                    extra={'invite_id': str(invite_id), 'error': str(e)},
                )
                raise InviteRevokeError() from e
            if not found:
                raise InviteNotFoundError('Invite not found')
        except InviteError as e:
            record_audit_event(
                self.audit_sink,
                AuditOperation.REVOKE,
                AuditOutcome.FAILURE,
                actor_id=actor_id,
                organization_id=org_id,
                target_id=invite_id,
                reason=e.code.value,
            )
            raise

        logger.info(
            'Revoked organization invite',
            extra={'invite_id': str(invite_id), 'actor_id': str(actor_id)},
        )
        record_audit_event(
            self.audit_sink,
            AuditOperation.REVOKE,
            AuditOutcome.SUCCESS,
            actor_id=actor_id,
            organization_id=org_id,
            target_id=invite_id,
        )

    async def list_organization_invites(
        self, org_id: UUID, origin: str | None = None
    ) -> list[InviteResponse]:
        """List an organization's invites, newest first, with redemption links.

        Args:
            org_id: Organization UUID
            origin: Public origin for links, defaults to the configured WEB_HOST

        Raises:
            InviteInternalError: If the invites could not be read
        """
        try:
            invites = await self.invite_store.list_invites_for_org(org_id)
        except SQLAlchemyError as e:
            logger.exception(
                'Failed to list invites',
                extra={'org_id': str(org_id), 'error': str(e)},
            )
            raise InviteInternalError() from e

        return [self.to_response(invite, origin) for invite in invites]
