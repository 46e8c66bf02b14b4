"""Access to the identity established by the hosting authentication layer."""

from fastapi import Request


async def get_user_id(request: Request) -> str | None:
    """Return the authenticated user's id, or None for anonymous requests.

    The authentication middleware in front of this service is expected to set
    ``request.state.user_id``.
    """
    user_id = getattr(request.state, 'user_id', None)
    if user_id is None:
        return None
    return str(user_id)
