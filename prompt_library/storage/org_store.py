"""
Store class for managing organizations.
"""

from dataclasses import dataclass
from typing import Callable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from prompt_library.storage.database import a_session_maker
from prompt_library.storage.org import Org


@dataclass
class OrgStore:
    """Store for managing organizations."""

    session_maker: Callable[..., AsyncSession] = a_session_maker

    async def create_org(self, name: str, slug: str) -> Org:
        """Create a new organization."""
        async with self.session_maker() as session:
            org = Org(name=name, slug=slug.lower().strip())
            session.add(org)
            await session.commit()
            await session.refresh(org)
            return org

    async def get_org_by_id(self, org_id: UUID) -> Org | None:
        """Get organization by ID."""
        async with self.session_maker() as session:
            result = await session.execute(select(Org).filter(Org.id == org_id))
            return result.scalars().first()
