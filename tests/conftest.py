"""Shared fixtures for store and service tests."""

from collections.abc import AsyncGenerator
from uuid import UUID

import pytest
from sqlalchemy import update
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from prompt_library.server.services.audit_service import AuditEntry, AuditSink
from prompt_library.server.services.invite_redemption_service import (
    InviteRedemptionService,
)
from prompt_library.server.services.invite_stats_service import InviteStatsService
from prompt_library.server.services.org_invite_service import OrgInviteService
from prompt_library.storage.database import create_tables
from prompt_library.storage.org_invite import OrgInvite
from prompt_library.storage.org_invite_store import OrgInviteStore
from prompt_library.storage.org_member_store import OrgMemberStore
from prompt_library.storage.org_store import OrgStore

WEB_HOST = 'https://prompts.example.com'

ADMIN_ID = UUID('a1111111-1111-1111-1111-111111111111')
USER1_ID = UUID('b2222222-2222-2222-2222-222222222222')
USER2_ID = UUID('c3333333-3333-3333-3333-333333333333')


class RecordingAuditSink(AuditSink):
    """Audit sink that keeps entries in memory for assertions."""

    def __init__(self):
        self.entries: list[AuditEntry] = []

    def append(self, entry: AuditEntry) -> None:
        self.entries.append(entry)


@pytest.fixture
async def async_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create an in-memory async SQLite engine with all tables."""
    engine = create_async_engine(
        'sqlite+aiosqlite:///:memory:',
        poolclass=StaticPool,
        connect_args={'check_same_thread': False},
        echo=False,
    )
    await create_tables(engine)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_maker(async_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(async_engine, expire_on_commit=False)


@pytest.fixture
def org_store(session_maker) -> OrgStore:
    return OrgStore(session_maker=session_maker)


@pytest.fixture
def invite_store(session_maker) -> OrgInviteStore:
    return OrgInviteStore(session_maker=session_maker)


@pytest.fixture
def member_store(session_maker) -> OrgMemberStore:
    return OrgMemberStore(session_maker=session_maker)


@pytest.fixture
def audit_sink() -> RecordingAuditSink:
    return RecordingAuditSink()


@pytest.fixture
def invite_service(invite_store, org_store, audit_sink) -> OrgInviteService:
    return OrgInviteService(
        invite_store=invite_store,
        org_store=org_store,
        audit_sink=audit_sink,
        web_host=WEB_HOST,
    )


@pytest.fixture
def redemption_service(invite_service, member_store) -> InviteRedemptionService:
    return InviteRedemptionService(
        invite_service=invite_service, member_store=member_store
    )


@pytest.fixture
def stats_service(invite_store) -> InviteStatsService:
    return InviteStatsService(invite_store=invite_store)


@pytest.fixture
async def org(org_store):
    return await org_store.create_org(name='Acme Prompts', slug='acme')


@pytest.fixture
def set_invite_fields(session_maker):
    """Overwrite invite columns directly, e.g. to move expires_at into the past."""

    async def _set(invite_id: UUID, **values) -> None:
        async with session_maker() as session:
            await session.execute(
                update(OrgInvite).where(OrgInvite.id == invite_id).values(**values)
            )
            await session.commit()

    return _set
