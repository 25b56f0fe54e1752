"""aclkeeper Storage Layer - SQLAlchemy models, repositories and the Postgres adapter."""

from .postgres_adapter import PostgresAdapter, PostgresConfig
from .models import Base
from .models_access_control import AclEntryModel, AccessRoleModel
from .models_groups import GroupModel, GroupMemberModel

__all__ = [
    "PostgresAdapter",
    "PostgresConfig",
    "Base",
    "AclEntryModel",
    "AccessRoleModel",
    "GroupModel",
    "GroupMemberModel",
]
