"""FastAPI dependency providers for stores and services."""

from functools import lru_cache

from prompt_library.server.services.invite_redemption_service import (
    InviteRedemptionService,
)
from prompt_library.server.services.invite_stats_service import InviteStatsService
from prompt_library.server.services.org_invite_service import OrgInviteService
from prompt_library.storage.org_invite_store import OrgInviteStore
from prompt_library.storage.org_member_store import OrgMemberStore
from prompt_library.storage.org_store import OrgStore


@lru_cache
def get_org_member_store() -> OrgMemberStore:
    return OrgMemberStore()


@lru_cache
def get_org_invite_service() -> OrgInviteService:
    return OrgInviteService(invite_store=OrgInviteStore(), org_store=OrgStore())


@lru_cache
def get_invite_redemption_service() -> InviteRedemptionService:
    return InviteRedemptionService(
        invite_service=get_org_invite_service(),
        member_store=get_org_member_store(),
    )


@lru_cache
def get_invite_stats_service() -> InviteStatsService:
    return InviteStatsService(invite_store=get_org_invite_service().invite_store)
