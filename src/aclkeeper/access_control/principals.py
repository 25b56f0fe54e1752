"""
Principal resolution.

Expands an authenticated caller into every principal whose grants apply to
them: the user, their system role, each group they belong to and, last, the
public.
"""

from typing import List, Optional, Protocol, Sequence

from sqlalchemy.orm import Session

from aclkeeper.access_control.models import Principal
from aclkeeper.storage.repositories.group_repository import GroupRepository


class GroupMembershipProvider(Protocol):
    """Anything that can list the groups a user currently belongs to."""

    def get_user_groups(self, session: Session, user_id: str) -> Sequence: ...


class PrincipalResolver:
    def __init__(self, groups: Optional[GroupMembershipProvider] = None):
        self.groups = groups or GroupRepository()

    def get_user_principals(
        self, session: Session, user_id: str, role: Optional[str] = None
    ) -> List[Principal]:
        """
        Ordered principal set: USER, ROLE (if any), GROUP per membership, PUBLIC.

        Reflects group state at call time; nothing is cached, so two calls
        racing a membership change may disagree.
        """
        principals = [Principal.user(user_id)]

        if isinstance(role, str) and role.strip():
            principals.append(Principal.role(role))

        for group in self.groups.get_user_groups(session, user_id) or []:
            principals.append(Principal.group(str(group.id)))

        principals.append(Principal.public())
        return principals
