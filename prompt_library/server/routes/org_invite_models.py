"""
Pydantic models and custom exceptions for organization invites.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, StrictInt

from prompt_library.storage.org import Org
from prompt_library.storage.org_invite import OrgInvite
from prompt_library.storage.org_invite_store import DEFAULT_EXPIRATION_DAYS


class InviteErrorCode(str, Enum):
    """Error kinds reported by the invite engine."""

    VALIDATION_ERROR = 'VALIDATION_ERROR'
    UNAUTHORIZED = 'UNAUTHORIZED'
    INVALID_TOKEN = 'INVALID_TOKEN'
    INVITE_NOT_FOUND = 'INVITE_NOT_FOUND'
    INVITE_REVOKED = 'INVITE_REVOKED'
    INVITE_EXPIRED = 'INVITE_EXPIRED'
    INVITE_MAX_USES = 'INVITE_MAX_USES'
    ORG_NOT_FOUND = 'ORG_NOT_FOUND'
    CREATE_FAILED = 'CREATE_FAILED'
    REVOKE_FAILED = 'REVOKE_FAILED'
    INTERNAL_ERROR = 'INTERNAL_ERROR'


class InviteError(Exception):
    """Base exception for invite errors."""

    code: InviteErrorCode = InviteErrorCode.INTERNAL_ERROR

    def __init__(self, message: str = 'Something went wrong. Please try again.'):
        super().__init__(message)

    @property
    def message(self) -> str:
        return str(self)


class InviteValidationError(InviteError):
    """Raised when invite parameters are out of range. Nothing was written."""

    code = InviteErrorCode.VALIDATION_ERROR

    def __init__(self, message: str = 'Invalid invite parameters'):
        super().__init__(message)


class InviteUnauthorizedError(InviteError):
    """Raised when the caller has no usable identity."""

    code = InviteErrorCode.UNAUTHORIZED

    def __init__(
        self, message: str = 'You are not authorized to perform this action.'
    ):
        super().__init__(message)


class InvalidInviteTokenError(InviteError):
    """Raised when the token is empty or not in the expected format."""

    code = InviteErrorCode.INVALID_TOKEN

    def __init__(self, message: str = 'Invalid invite token format.'):
        super().__init__(message)


class InviteNotFoundError(InviteError):
    """Raised when no invite matches the token or ID."""

    code = InviteErrorCode.INVITE_NOT_FOUND

    def __init__(
        self,
        message: str = (
            'This invite link is invalid. Please check the link and try again.'
        ),
    ):
        super().__init__(message)


class InviteRevokedError(InviteError):
    """Raised when the invite has been revoked."""

    code = InviteErrorCode.INVITE_REVOKED

    def __init__(
        self,
        message: str = (
            'This invite link has been revoked. '
            'Please contact your administrator.'
        ),
    ):
        super().__init__(message)


class InviteExpiredError(InviteError):
    """Raised when the invite has expired."""

    code = InviteErrorCode.INVITE_EXPIRED

    def __init__(
        self,
        message: str = (
            'This invite link has expired. '
            'Please request a new invite from your administrator.'
        ),
    ):
        super().__init__(message)


class InviteMaxUsesError(InviteError):
    """Raised when the invite has no uses left."""

    code = InviteErrorCode.INVITE_MAX_USES

    def __init__(
        self,
        message: str = (
            'This invite link has reached its maximum number of uses. '
            'Please request a new invite.'
        ),
    ):
        super().__init__(message)


class InviteOrgNotFoundError(InviteError):
    """Raised when the organization behind an invite does not exist."""

    code = InviteErrorCode.ORG_NOT_FOUND

    def __init__(
        self, message: str = 'The organization for this invite no longer exists.'
    ):
        super().__init__(message)


class InviteCreateError(InviteError):
    """Raised when a valid invite could not be stored."""

    code = InviteErrorCode.CREATE_FAILED

    def __init__(self, message: str = 'Failed to create invite'):
        super().__init__(message)


class InviteRevokeError(InviteError):
    """Raised when a revocation could not be stored."""

    code = InviteErrorCode.REVOKE_FAILED

    def __init__(self, message: str = 'Failed to revoke invite'):
        super().__init__(message)


class InviteInternalError(InviteError):
    """Raised for unexpected storage failures. Carries no internal detail."""

    code = InviteErrorCode.INTERNAL_ERROR


class InviteCreate(BaseModel):
    """Request model for creating an invite."""

    expires_in_days: StrictInt = DEFAULT_EXPIRATION_DAYS
    max_uses: StrictInt | None = None
    role: str = OrgInvite.ROLE_MEMBER


class InviteTokenRequest(BaseModel):
    """Request model for validating an invite token."""

    token: str | None = None


class InviteRedeemRequest(BaseModel):
    """Request model for redeeming an invite.

    Whether the account is new is decided server-side, never by the caller.
    """

    token: str | None = None


class OrganizationSummary(BaseModel):
    id: UUID
    slug: str
    name: str

    @classmethod
    def from_org(cls, org: Org) -> 'OrganizationSummary':
        return cls(id=org.id, slug=org.slug, name=org.name)


class InviteSummary(BaseModel):
    """Invite details that may be shown to anyone holding the token."""

    expires_at: datetime
    role: str
    max_uses: int | None
    current_uses: int


class InviteValidationResponse(BaseModel):
    valid: bool
    organization: OrganizationSummary | None = None
    invite: InviteSummary | None = None
    error: str | None = None
    error_code: InviteErrorCode | None = None

    @classmethod
    def from_invite(cls, invite: OrgInvite) -> 'InviteValidationResponse':
        """Build the public view of a valid invite.

        The token and the creating administrator are deliberately left out.
        """
        return cls(
            valid=True,
            organization=OrganizationSummary.from_org(invite.org),
            invite=InviteSummary(
                expires_at=invite.expires_at,
                role=invite.role,
                max_uses=invite.max_uses,
                current_uses=invite.current_uses,
            ),
        )

    @classmethod
    def from_error(cls, error: InviteError) -> 'InviteValidationResponse':
        return cls(valid=False, error=error.message, error_code=error.code)


class InviteRedemptionResponse(BaseModel):
    success: bool = True
    already_member: bool
    organization: OrganizationSummary


class InviteResponse(BaseModel):
    """Response model for invite details shown to organization admins."""

    id: UUID
    org_id: UUID
    token: str
    created_by: UUID
    created_at: datetime
    expires_at: datetime
    max_uses: int | None
    current_uses: int
    is_active: bool
    role: str
    status: str
    invite_url: str

    @classmethod
    def from_invite(
        cls, invite: OrgInvite, invite_url: str, status: str
    ) -> 'InviteResponse':
        """Create an InviteResponse from an OrgInvite entity.

        Args:
            invite: The invite entity to convert
            invite_url: Redemption link built from the token
            status: Derived status (active, revoked, expired or exhausted)

        Returns:
            InviteResponse: The response model instance
        """
        return cls(
            id=invite.id,
            org_id=invite.org_id,
            token=invite.token,
            created_by=invite.created_by,
            created_at=invite.created_at,
            expires_at=invite.expires_at,
            max_uses=invite.max_uses,
            current_uses=invite.current_uses,
            is_active=invite.is_active,
            role=invite.role,
            status=status,
            invite_url=invite_url,
        )


class InviteUser(BaseModel):
    user_id: UUID
    joined_at: datetime
    was_new_user: bool


class InviteStats(BaseModel):
    total_redemptions: int
    new_users: int
    existing_users: int
    remaining_uses: int | None
    users: list[InviteUser]


class RevokeInviteResponse(BaseModel):
    success: bool = True
