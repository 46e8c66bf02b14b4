"""
Permission-based authorization dependencies for invite endpoints.

Roles (admin, member) are mapped to permissions via ROLE_PERMISSIONS, and the
caller's role is read from their membership in the path organization.

Usage:
    from prompt_library.server.auth.authorization import (
        Permission,
        require_permission,
    )

    @router.delete('/{invite_id}')
    async def revoke_invite(
        org_id: UUID,
        invite_id: UUID,
        user_id: str = Depends(require_permission(Permission.MANAGE_INVITES)),
    ):
        # Only organization admins can revoke invites
        ...
"""

from enum import Enum
from uuid import UUID

from fastapi import Depends, HTTPException, status

from prompt_library.core.logger import prompt_library_logger as logger
from prompt_library.server.dependencies import get_org_member_store
from prompt_library.server.user_auth import get_user_id
from prompt_library.storage.org_member_store import OrgMemberStore


class Permission(str, Enum):
    """Permissions that can be assigned to roles."""

    # Invites
    MANAGE_INVITES = 'manage_invites'
    VIEW_INVITE_STATS = 'view_invite_stats'


class RoleName(str, Enum):
    """Role names used in the system."""

    ADMIN = 'admin'
    MEMBER = 'member'


# Permission mappings for each role
ROLE_PERMISSIONS: dict[RoleName, frozenset[Permission]] = {
    RoleName.ADMIN: frozenset(
        [
            Permission.MANAGE_INVITES,
            Permission.VIEW_INVITE_STATS,
        ]
    ),
    RoleName.MEMBER: frozenset(),
}


async def get_user_org_role(
    member_store: OrgMemberStore, user_id: str, org_id: UUID
) -> str | None:
    """
    Get the user's role in an organization.

    Args:
        member_store: Store used for the membership lookup
        user_id: User ID (string that will be converted to UUID)
        org_id: Organization ID

    Returns:
        Role name if user is a member, None otherwise
    """
    try:
        user_uuid = UUID(user_id)
    except ValueError:
        return None

    org_member = await member_store.get_org_member(org_id, user_uuid)
    if not org_member:
        return None
    return org_member.role


def get_role_permissions(role_name: str) -> frozenset[Permission]:
    """
    Get the permissions for a role.

    Args:
        role_name: Name of the role

    Returns:
        Set of permissions for the role
    """
    try:
        role_enum = RoleName(role_name)
        return ROLE_PERMISSIONS.get(role_enum, frozenset())
    except ValueError:
        return frozenset()


def has_permission(role_name: str, permission: Permission) -> bool:
    return permission in get_role_permissions(role_name)


def require_permission(permission: Permission):
    """
    Factory function that creates a dependency to require a specific permission.

    This creates a FastAPI dependency that:
    1. Extracts org_id from the path parameter
    2. Gets the authenticated user_id
    3. Checks if the user has the required permission in the organization
    4. Returns the user_id if authorized, raises HTTPException otherwise

    Args:
        permission: The permission required to access the endpoint

    Returns:
        Dependency function that validates permission and returns user_id
    """

    async def permission_checker(
        org_id: UUID,
        user_id: str | None = Depends(get_user_id),
        member_store: OrgMemberStore = Depends(get_org_member_store),
    ) -> str:
        if not user_id:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail='User not authenticated',
            )

        user_role = await get_user_org_role(member_store, user_id, org_id)

        if not user_role:
            logger.warning(
                'User not a member of organization',
                extra={'user_id': user_id, 'org_id': str(org_id)},
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail='User is not a member of this organization',
            )

        if not has_permission(user_role, permission):
            logger.warning(
                'Insufficient permissions',
                extra={
                    'user_id': user_id,
                    'org_id': str(org_id),
                    'user_role': user_role,
                    'required_permission': permission.value,
                },
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f'Requires {permission.value} permission',
            )

        return user_id

    return permission_checker
