"""
Import all models here so Base.metadata knows every table.
"""

from prompt_library.storage.base import Base
from prompt_library.storage.org import Org
from prompt_library.storage.org_invite import OrgInvite
from prompt_library.storage.org_invite_redemption import OrgInviteRedemption
from prompt_library.storage.org_member import OrgMember

__all__ = [
    'Base',
    'Org',
    'OrgInvite',
    'OrgInviteRedemption',
    'OrgMember',
]
