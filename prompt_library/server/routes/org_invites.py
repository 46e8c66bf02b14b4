"""API routes for organization invites."""

from uuid import UUID

from fastapi import APIRouter, Depends, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from prompt_library.core.logger import prompt_library_logger as logger
from prompt_library.server.auth.authorization import Permission, require_permission
from prompt_library.server.dependencies import (
    get_invite_redemption_service,
    get_invite_stats_service,
    get_org_invite_service,
)
from prompt_library.server.routes.org_invite_models import (
    InviteCreate,
    InviteError,
    InviteErrorCode,
    InviteRedeemRequest,
    InviteRedemptionResponse,
    InviteResponse,
    InviteStats,
    InviteTokenRequest,
    InviteValidationError,
    InviteValidationResponse,
    RevokeInviteResponse,
)
from prompt_library.server.services.invite_redemption_service import (
    InviteRedemptionService,
)
from prompt_library.server.services.invite_stats_service import InviteStatsService
from prompt_library.server.services.org_invite_service import OrgInviteService
from prompt_library.server.user_auth import get_user_id

# Router for invite administration on an organization (requires org_id)
invite_admin_router = APIRouter(prefix='/api/organizations/{org_id}/invites')

# Router for validating and redeeming invites (no org_id required)
invite_router = APIRouter(prefix='/api/invites')

ERROR_STATUS_CODES: dict[InviteErrorCode, int] = {
    InviteErrorCode.VALIDATION_ERROR: status.HTTP_400_BAD_REQUEST,
    InviteErrorCode.UNAUTHORIZED: status.HTTP_401_UNAUTHORIZED,
    InviteErrorCode.INVALID_TOKEN: status.HTTP_400_BAD_REQUEST,
    InviteErrorCode.INVITE_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    InviteErrorCode.INVITE_REVOKED: status.HTTP_400_BAD_REQUEST,
    InviteErrorCode.INVITE_EXPIRED: status.HTTP_400_BAD_REQUEST,
    InviteErrorCode.INVITE_MAX_USES: status.HTTP_400_BAD_REQUEST,
    InviteErrorCode.ORG_NOT_FOUND: status.HTTP_400_BAD_REQUEST,
    InviteErrorCode.CREATE_FAILED: status.HTTP_500_INTERNAL_SERVER_ERROR,
    InviteErrorCode.REVOKE_FAILED: status.HTTP_500_INTERNAL_SERVER_ERROR,
    InviteErrorCode.INTERNAL_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def invite_error_response(error: InviteError) -> JSONResponse:
    """Translate an invite error into a ``{code, error}`` JSON response."""
    return JSONResponse(
        status_code=ERROR_STATUS_CODES.get(
            error.code, status.HTTP_500_INTERNAL_SERVER_ERROR
        ),
        content={'code': error.code.value, 'error': error.message},
    )


async def request_validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Answer malformed request bodies and paths with a VALIDATION_ERROR body."""
    errors = exc.errors()
    message = 'Invalid request'
    if errors:
        first = errors[0]
        location = '.'.join(
            str(part) for part in first.get('loc', ()) if part not in ('body', 'path')
        )
        message = f'{location}: {first.get("msg")}' if location else first.get('msg')
    logger.info('Rejected malformed invite request', extra={'error': message})
    return invite_error_response(InviteValidationError(message))


def _request_origin(request: Request) -> str:
    return str(request.base_url).rstrip('/')


@invite_admin_router.post(
    '',
    response_model=InviteResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_invite(
    org_id: UUID,
    invite_data: InviteCreate,
    request: Request,
    user_id: str = Depends(require_permission(Permission.MANAGE_INVITES)),
    invite_service: OrgInviteService = Depends(get_org_invite_service),
):
    """Create a shareable invite link for an organization.

    Args:
        org_id: Organization UUID
        invite_data: Expiry in days, optional usage limit and role
        request: FastAPI request, used for the link origin
        user_id: Authenticated admin ID (from dependency)

    Returns:
        InviteResponse: The invite, including its token and invite_url
    """
    try:
        invite = await invite_service.create_invite(
            org_id=org_id,
            created_by=UUID(user_id),
            expires_in_days=invite_data.expires_in_days,
            max_uses=invite_data.max_uses,
            role=invite_data.role,
        )
    except InviteError as e:
        return invite_error_response(e)

    return invite_service.to_response(invite, _request_origin(request))


@invite_admin_router.get('', response_model=list[InviteResponse])
async def list_invites(
    org_id: UUID,
    request: Request,
    user_id: str = Depends(require_permission(Permission.MANAGE_INVITES)),
    invite_service: OrgInviteService = Depends(get_org_invite_service),
):
    """List an organization's invites, newest first."""
    try:
        return await invite_service.list_organization_invites(
            org_id, _request_origin(request)
        )
    except InviteError as e:
        return invite_error_response(e)


@invite_admin_router.delete('/{invite_id}', response_model=RevokeInviteResponse)
async def revoke_invite(
    org_id: UUID,
    invite_id: UUID,
    user_id: str = Depends(require_permission(Permission.MANAGE_INVITES)),
    invite_service: OrgInviteService = Depends(get_org_invite_service),
):
    """Revoke an invite. Revoking an already revoked invite succeeds."""
    try:
        await invite_service.revoke_invite(
            invite_id=invite_id, actor_id=UUID(user_id), org_id=org_id
        )
    except InviteError as e:
        return invite_error_response(e)

    return RevokeInviteResponse()


@invite_admin_router.get('/{invite_id}/stats', response_model=InviteStats)
async def get_invite_stats(
    org_id: UUID,
    invite_id: UUID,
    user_id: str = Depends(require_permission(Permission.VIEW_INVITE_STATS)),
    stats_service: InviteStatsService = Depends(get_invite_stats_service),
):
    """Get redemption statistics for an invite."""
    try:
        stats = await stats_service.get_invite_stats(invite_id, org_id)
    except InviteError as e:
        return invite_error_response(e)

    if stats is None:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={
                'code': InviteErrorCode.INVITE_NOT_FOUND.value,
                'error': 'Invite not found',
            },
        )
    return stats


@invite_router.post('/validate', response_model=InviteValidationResponse)
async def validate_invite(
    body: InviteTokenRequest,
    invite_service: OrgInviteService = Depends(get_org_invite_service),
):
    """Check whether an invite token can be redeemed.

    Unauthenticated. Rejected tokens still answer 200 with ``valid: false``
    and an error code; the response never includes the token.
    """
    try:
        return await invite_service.validate_invite(body.token)
    except InviteError as e:
        return invite_error_response(e)


@invite_router.post('/redeem', response_model=InviteRedemptionResponse)
async def redeem_invite(
    body: InviteRedeemRequest,
    user_id: str | None = Depends(get_user_id),
    redemption_service: InviteRedemptionService = Depends(
        get_invite_redemption_service
    ),
):
    """Join an organization through an invite.

    Args:
        body: The invite token
        user_id: Authenticated user ID, None when anonymous

    Returns:
        InviteRedemptionResponse: success, already_member and the organization
    """
    try:
        result = await redemption_service.redeem_invite(
            token=body.token, user_id=user_id, was_new_user=False
        )
    except InviteError as e:
        return invite_error_response(e)

    logger.info(
        'Invite redeemed via API',
        extra={
            'user_id': user_id,
            'org_id': str(result.organization.id),
            'already_member': result.already_member,
        },
    )
    return result
