"""
Access role registry.

Maps a role identifier such as ``agent_editor`` to the permission bits it
stands for on one resource type. Granting "with a role" copies those bits
into the ACL entry; the role id is kept on the entry for display only.
"""

from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from aclkeeper.access_control.exceptions import PermissionValidationError
from aclkeeper.access_control.models import AccessRoleCreate, AccessRoleUpdate
from aclkeeper.access_control.permissions import (
    DEFAULT_RESOURCE_TYPES,
    ResourceType,
    RoleBits,
    role_id_for,
    validate_perm_bits,
)
from aclkeeper.platform.logging import get_logger
from aclkeeper.storage.models_access_control import AccessRoleModel
from aclkeeper.storage.repositories.access_role_repository import AccessRoleRepository

logger = get_logger(__name__)

# Resource types whose role labels carry a type-specific prefix
_LABEL_PREFIXES = {
    ResourceType.MCPSERVER: "com_ui_mcp_server_role",
    ResourceType.REMOTE_AGENT: "com_ui_remote_agent_role",
}

_ROLE_BUNDLES = (
    ("viewer", RoleBits.VIEWER),
    ("editor", RoleBits.EDITOR),
    ("owner", RoleBits.OWNER),
)


def default_role_definitions(resource_types=DEFAULT_RESOURCE_TYPES) -> List[AccessRoleCreate]:
    """VIEWER / EDITOR / OWNER for each resource type."""
    definitions = []
    for resource_type in resource_types:
        prefix = _LABEL_PREFIXES.get(resource_type, "com_ui_role")
        for name, bits in _ROLE_BUNDLES:
            definitions.append(
                AccessRoleCreate(
                    access_role_id=role_id_for(resource_type, name),
                    name=f"{prefix}_{name}",
                    description=f"{prefix}_{name}_desc",
                    resource_type=resource_type,
                    perm_bits=int(bits),
                )
            )
    return definitions


class AccessRoleRegistry:
    def __init__(self, role_repo: Optional[AccessRoleRepository] = None):
        self.role_repo = role_repo or AccessRoleRepository()

    def seed_default_roles(self, session: Session, resource_types=DEFAULT_RESOURCE_TYPES) -> Dict[str, AccessRoleModel]:
        """
        Install the predefined roles. Safe to run on every startup.

        Identifiers that already exist are left as they are, including any
        edits made to them since the last seed.
        """
        seeded: Dict[str, AccessRoleModel] = {}
        created = 0
        for definition in default_role_definitions(resource_types):
            existing = self.role_repo.get_by_identifier(session, definition.access_role_id)
            if existing:
                seeded[definition.access_role_id] = existing
                continue
            role = self.role_repo.insert_if_absent(session, AccessRoleModel(**definition.model_dump()))
            seeded[definition.access_role_id] = role
            created += 1

        session.flush()
        logger.info("Seeded access roles", created=created, total=len(seeded))
        return seeded

    def find_role_by_id(self, session: Session, role_id: str) -> Optional[AccessRoleModel]:
        return self.role_repo.get(session, role_id)

    def find_role_by_identifier(self, session: Session, access_role_id: str) -> Optional[AccessRoleModel]:
        return self.role_repo.get_by_identifier(session, access_role_id)

    def find_roles_by_resource_type(self, session: Session, resource_type: str) -> List[AccessRoleModel]:
        return self.role_repo.list_by_resource_type(session, resource_type)

    def find_role_by_permissions(self, session: Session, resource_type: str, perm_bits: int) -> Optional[AccessRoleModel]:
        """Exact match on resource type and bits."""
        return self.role_repo.get_by_permissions(session, resource_type, int(perm_bits))

    def get_role_for_permissions(self, session: Session, resource_type: str, perm_bits: int) -> Optional[AccessRoleModel]:
        """
        Best label for an arbitrary mask.

        Exact match first, otherwise the role with the most bits whose bits
        are all contained in ``perm_bits``. Used to label what a user holds;
        never consulted for access decisions.
        """
        perm_bits = int(perm_bits)
        exact = self.find_role_by_permissions(session, resource_type, perm_bits)
        if exact:
            return exact

        roles = sorted(
            self.find_roles_by_resource_type(session, resource_type),
            key=lambda role: role.perm_bits,
            reverse=True,
        )
        for role in roles:
            if role.perm_bits & perm_bits == role.perm_bits:
                return role
        return None

    def get_all_roles(self, session: Session) -> List[AccessRoleModel]:
        return self.role_repo.list_all(session)

    def create_role(self, session: Session, role: AccessRoleCreate) -> AccessRoleModel:
        validate_perm_bits(role.perm_bits)
        if self.role_repo.get_by_identifier(session, role.access_role_id):
            raise PermissionValidationError(f"Role {role.access_role_id} already exists")
        return self.role_repo.create(session, AccessRoleModel(**role.model_dump()))

    def update_role(self, session: Session, access_role_id: str, updates: AccessRoleUpdate) -> Optional[AccessRoleModel]:
        changes = updates.model_dump(exclude_unset=True)
        if "perm_bits" in changes:
            validate_perm_bits(changes["perm_bits"])
        return self.role_repo.update_by_identifier(session, access_role_id, changes)

    def delete_role(self, session: Session, access_role_id: str) -> bool:
        return self.role_repo.delete_by_identifier(session, access_role_id)
