"""Tests for invite redemption service."""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, patch
from uuid import UUID, uuid4

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from prompt_library.server.routes.org_invite_models import (
    InvalidInviteTokenError,
    InviteExpiredError,
    InviteInternalError,
    InviteMaxUsesError,
    InviteNotFoundError,
    InviteRevokedError,
    InviteUnauthorizedError,
)
from prompt_library.server.services.audit_service import (
    AuditOperation,
    AuditOutcome,
)
from prompt_library.server.services.invite_redemption_service import (
    InviteRedemptionService,
)
from prompt_library.server.services.org_invite_service import OrgInviteService
from prompt_library.storage.base import utc_now
from prompt_library.storage.database import create_tables, use_immediate_transactions
from prompt_library.storage.org_invite_store import OrgInviteStore
from prompt_library.storage.org_member_store import OrgMemberStore
from prompt_library.storage.org_store import OrgStore

ADMIN_ID = UUID('a1111111-1111-1111-1111-111111111111')
USER_A = UUID('b2222222-2222-2222-2222-222222222222')
USER_B = UUID('c3333333-3333-3333-3333-333333333333')
USER_C = UUID('d4444444-4444-4444-4444-444444444444')


async def _create_invite(invite_service, org, **kwargs):
    params = {'expires_in_days': 7, 'max_uses': None, 'role': 'member'}
    params.update(kwargs)
    return await invite_service.create_invite(
        org_id=org.id, created_by=ADMIN_ID, **params
    )


class TestRedeemInvite:
    """Test cases for redeeming an invite."""

    @pytest.mark.asyncio
    async def test_usage_limited_invite_walkthrough(
        self, invite_service, redemption_service, invite_store, org
    ):
        """Two users join through a two-use invite; the third is turned away."""
        invite = await _create_invite(invite_service, org, max_uses=2)

        validation = await invite_service.validate_invite(invite.token)
        assert validation.valid is True
        assert validation.invite.current_uses == 0

        result_a = await redemption_service.redeem_invite(invite.token, USER_A)
        assert result_a.success is True
        assert result_a.already_member is False
        assert result_a.organization.slug == 'acme'

        result_b = await redemption_service.redeem_invite(invite.token, USER_B)
        assert result_b.success is True

        with pytest.raises(InviteMaxUsesError):
            await redemption_service.redeem_invite(invite.token, USER_C)

        stored = await invite_store.get_invite_by_id(invite.id)
        assert stored.current_uses == 2

    @pytest.mark.asyncio
    async def test_redeem_grants_invite_role(
        self, invite_service, redemption_service, member_store, org
    ):
        invite = await _create_invite(invite_service, org, role='admin')

        await redemption_service.redeem_invite(invite.token, str(USER_A))

        member = await member_store.get_org_member(org.id, USER_A)
        assert member.role == 'admin'

    @pytest.mark.asyncio
    async def test_redeem_twice_is_idempotent(
        self, invite_service, redemption_service, invite_store, org
    ):
        invite = await _create_invite(invite_service, org, max_uses=5)

        first = await redemption_service.redeem_invite(
            invite.token, USER_A, was_new_user=True
        )
        second = await redemption_service.redeem_invite(invite.token, USER_A)

        assert first.already_member is False
        assert second.already_member is True
        stored = await invite_store.get_invite_by_id(invite.id)
        assert stored.current_uses == 1
        redemptions = await invite_store.get_redemptions(invite.id)
        assert len(redemptions) == 1
        assert redemptions[0].was_new_user is True

    @pytest.mark.asyncio
    async def test_existing_member_writes_nothing(
        self, invite_service, redemption_service, invite_store, member_store, org
    ):
        await member_store.add_org_member(org.id, USER_A, 'admin')
        invite = await _create_invite(invite_service, org, max_uses=1)

        result = await redemption_service.redeem_invite(invite.token, USER_A)

        assert result.already_member is True
        stored = await invite_store.get_invite_by_id(invite.id)
        assert stored.current_uses == 0
        assert await invite_store.get_redemptions(invite.id) == []
        member = await member_store.get_org_member(org.id, USER_A)
        assert member.role == 'admin'

    @pytest.mark.asyncio
    async def test_unlimited_invite_never_exhausted(
        self, invite_service, redemption_service, invite_store, org, set_invite_fields
    ):
        invite = await _create_invite(invite_service, org, max_uses=None)
        await set_invite_fields(invite.id, current_uses=1_000_000)

        result = await redemption_service.redeem_invite(invite.token, USER_A)

        assert result.already_member is False
        stored = await invite_store.get_invite_by_id(invite.id)
        assert stored.current_uses == 1_000_001

    @pytest.mark.asyncio
    @pytest.mark.parametrize('user_id', [None, '', 'not-a-uuid'])
    async def test_redeem_requires_identity(
        self, invite_service, redemption_service, invite_store, org, user_id
    ):
        invite = await _create_invite(invite_service, org)

        with pytest.raises(InviteUnauthorizedError):
            await redemption_service.redeem_invite(invite.token, user_id)

        stored = await invite_store.get_invite_by_id(invite.id)
        assert stored.current_uses == 0

    @pytest.mark.asyncio
    async def test_redeem_malformed_token(self, redemption_service):
        with pytest.raises(InvalidInviteTokenError):
            await redemption_service.redeem_invite('   ', USER_A)

    @pytest.mark.asyncio
    async def test_redeem_unknown_token(self, redemption_service, org):
        with pytest.raises(InviteNotFoundError):
            await redemption_service.redeem_invite('missing-token', USER_A)

    @pytest.mark.asyncio
    async def test_redeem_revoked_invite(
        self, invite_service, redemption_service, member_store, org
    ):
        invite = await _create_invite(invite_service, org)
        await invite_service.revoke_invite(invite.id, ADMIN_ID, org.id)

        with pytest.raises(InviteRevokedError):
            await redemption_service.redeem_invite(invite.token, USER_A)

        assert await member_store.get_org_member(org.id, USER_A) is None

    @pytest.mark.asyncio
    async def test_redeem_expired_invite(
        self, invite_service, redemption_service, org, set_invite_fields
    ):
        invite = await _create_invite(invite_service, org)
        await set_invite_fields(invite.id, expires_at=utc_now() - timedelta(seconds=1))

        with pytest.raises(InviteExpiredError):
            await redemption_service.redeem_invite(invite.token, USER_A)

    @pytest.mark.asyncio
    async def test_redeem_store_failure_is_internal_error(
        self, invite_service, redemption_service, org
    ):
        invite = await _create_invite(invite_service, org)

        with patch.object(
            invite_service.invite_store,
            'claim_invite_use',
            new_callable=AsyncMock,
            side_effect=OperationalError('UPDATE', {}, Exception('disk I/O error')),
        ):
            with pytest.raises(InviteInternalError) as exc_info:
                await redemption_service.redeem_invite(invite.token, USER_A)

        assert 'disk' not in exc_info.value.message

    @pytest.mark.asyncio
    async def test_redeem_is_audited(
        self, invite_service, redemption_service, audit_sink, org
    ):
        invite = await _create_invite(invite_service, org, max_uses=1)
        await redemption_service.redeem_invite(invite.token, USER_A)
        with pytest.raises(InviteMaxUsesError):
            await redemption_service.redeem_invite(invite.token, USER_B)

        redeems = [
            e for e in audit_sink.entries if e.operation == AuditOperation.REDEEM
        ]
        assert [(e.actor_id, e.outcome, e.reason) for e in redeems] == [
            (str(USER_A), AuditOutcome.SUCCESS, None),
            (str(USER_B), AuditOutcome.FAILURE, 'INVITE_MAX_USES'),
        ]
        assert all(e.target_id == str(invite.id) for e in redeems)
        assert all(e.organization_id == str(org.id) for e in redeems)

    @pytest.mark.asyncio
    async def test_rejected_redemption_audit_cites_invite(
        self, invite_service, redemption_service, audit_sink, org
    ):
        invite = await _create_invite(invite_service, org)
        await invite_service.revoke_invite(invite.id, ADMIN_ID, org.id)

        with pytest.raises(InviteRevokedError):
            await redemption_service.redeem_invite(invite.token, USER_A)

        entry = audit_sink.entries[-1]
        assert entry.operation == AuditOperation.REDEEM
        assert entry.outcome == AuditOutcome.FAILURE
        assert entry.reason == 'INVITE_REVOKED'
        assert entry.organization_id == str(org.id)
        assert entry.target_id == str(invite.id)

    @pytest.mark.asyncio
    async def test_revoked_wins_over_expired_and_exhausted(
        self, invite_service, redemption_service, member_store, org, set_invite_fields
    ):
        invite = await _create_invite(invite_service, org, max_uses=1)
        await set_invite_fields(
            invite.id,
            is_active=False,
            expires_at=utc_now() - timedelta(days=1),
            current_uses=1,
        )

        with pytest.raises(InviteRevokedError):
            await redemption_service.redeem_invite(invite.token, USER_A)

        assert await member_store.get_org_member(org.id, USER_A) is None

    @pytest.mark.asyncio
    async def test_audit_failure_does_not_fail_redemption(
        self, invite_service, redemption_service, audit_sink, org
    ):
        invite = await _create_invite(invite_service, org)

        with patch.object(audit_sink, 'append', side_effect=RuntimeError('down')):
            result = await redemption_service.redeem_invite(invite.token, USER_A)

        assert result.success is True


class TestRedeemLostRace:
    """A concurrent redemption or revocation lands between validation and claim."""

    @pytest.mark.asyncio
    async def test_last_use_taken_after_validation(
        self, invite_service, redemption_service, invite_store, member_store, org
    ):
        invite = await _create_invite(invite_service, org, max_uses=1)
        stale = await invite_store.get_invite_by_token(invite.token)
        await redemption_service.redeem_invite(invite.token, USER_A)

        with patch.object(
            invite_store,
            'get_invite_by_token',
            new_callable=AsyncMock,
            return_value=stale,
        ):
            with pytest.raises(InviteMaxUsesError):
                await redemption_service.redeem_invite(invite.token, USER_B)

        assert await member_store.get_org_member(org.id, USER_B) is None
        stored = await invite_store.get_invite_by_id(invite.id)
        assert stored.current_uses == 1
        assert len(await invite_store.get_redemptions(invite.id)) == 1

    @pytest.mark.asyncio
    async def test_revoked_after_validation(
        self, invite_service, redemption_service, invite_store, member_store, org
    ):
        invite = await _create_invite(invite_service, org, max_uses=3)
        stale = await invite_store.get_invite_by_token(invite.token)
        await invite_service.revoke_invite(invite.id, ADMIN_ID, org.id)

        with patch.object(
            invite_store,
            'get_invite_by_token',
            new_callable=AsyncMock,
            return_value=stale,
        ):
            with pytest.raises(InviteRevokedError):
                await redemption_service.redeem_invite(invite.token, USER_A)

        assert await member_store.get_org_member(org.id, USER_A) is None
        stored = await invite_store.get_invite_by_id(invite.id)
        assert stored.current_uses == 0


class TestConcurrentRedemption:
    """Redemptions racing on one invite through a shared file database."""

    @pytest.fixture
    async def file_services(self, tmp_path):
        engine = create_async_engine(
            f'sqlite+aiosqlite:///{tmp_path / "invites.db"}',
            connect_args={'timeout': 30},
        )
        use_immediate_transactions(engine)
        await create_tables(engine)
        session_maker = async_sessionmaker(engine, expire_on_commit=False)

        invite_service = OrgInviteService(
            invite_store=OrgInviteStore(session_maker=session_maker),
            org_store=OrgStore(session_maker=session_maker),
            web_host='https://prompts.example.com',
        )
        redemption_service = InviteRedemptionService(
            invite_service=invite_service,
            member_store=OrgMemberStore(session_maker=session_maker),
        )
        org = await invite_service.org_store.create_org(name='Race', slug='race')

        yield invite_service, redemption_service, org

        await engine.dispose()

    @pytest.mark.asyncio
    async def test_usage_bound_holds_under_concurrency(self, file_services):
        invite_service, redemption_service, org = file_services
        invite = await _create_invite(invite_service, org, max_uses=2)
        users = [uuid4() for _ in range(6)]

        results = await asyncio.gather(
            *(redemption_service.redeem_invite(invite.token, u) for u in users),
            return_exceptions=True,
        )

        successes = [r for r in results if not isinstance(r, BaseException)]
        failures = [r for r in results if isinstance(r, BaseException)]
        assert len(successes) == 2
        assert all(r.already_member is False for r in successes)
        assert all(isinstance(f, InviteMaxUsesError) for f in failures)

        store = invite_service.invite_store
        stored = await store.get_invite_by_id(invite.id)
        assert stored.current_uses == 2
        assert len(await store.get_redemptions(invite.id)) == 2

    @pytest.mark.asyncio
    async def test_same_user_concurrent_redemptions_count_once(self, file_services):
        invite_service, redemption_service, org = file_services
        invite = await _create_invite(invite_service, org, max_uses=None)

        results = await asyncio.gather(
            *(redemption_service.redeem_invite(invite.token, USER_A) for _ in range(4))
        )

        assert sum(1 for r in results if not r.already_member) == 1
        store = invite_service.invite_store
        stored = await store.get_invite_by_id(invite.id)
        assert stored.current_uses == 1
        assert len(await store.get_redemptions(invite.id)) == 1
