from typing import List
from sqlalchemy import select
from sqlalchemy.orm import Session

from aclkeeper.storage.models_groups import GroupModel, GroupMemberModel
from .base import BaseRepository


class GroupRepository(BaseRepository[GroupModel]):
    """
    Local group membership store.

    Serves as the default group-membership collaborator of the principal
    resolver: ``get_user_groups`` is the only method the ACL engine calls.
    Membership itself is written by whatever owns the groups (a directory
    sync, an admin tool) through the base CRUD.
    """

    model = GroupModel
    list_order = ("name",)

    def get_user_groups(self, session: Session, user_id: str) -> List[GroupModel]:
        """Groups that currently list ``user_id`` as a member."""
        stmt = (
            select(GroupModel)
            .join(GroupMemberModel, GroupMemberModel.group_id == GroupModel.id)
            .where(GroupMemberModel.member_id == user_id)
            .order_by(GroupModel.name)
        )
        return list(session.scalars(stmt).all())
