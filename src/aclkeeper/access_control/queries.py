from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from aclkeeper.access_control.models import Principal
from aclkeeper.access_control.permissions import (
    PrincipalType,
    validate_required_permission,
)
from aclkeeper.storage.models_access_control import AclEntryModel
from aclkeeper.storage.repositories.acl_entry_repository import AclEntryRepository


class PermissionQueryEngine:
    """
    Read side of the ACL.

    Every query takes the caller's resolved principal set and also matches
    PUBLIC entries. An empty principal set yields the negative result without
    touching the database; a malformed required mask raises.
    """

    def __init__(self, acl_repo: Optional[AclEntryRepository] = None):
        self.acl_repo = acl_repo or AclEntryRepository()

    def find_entries_by_principals_and_resource(
        self,
        session: Session,
        principals: Sequence[Principal],
        resource_type: str,
        resource_id: str,
    ) -> List[AclEntryModel]:
        if not principals:
            return []
        return self.acl_repo.find(
            session,
            self.acl_repo.principals_clause(principals),
            resource_type=resource_type,
            resource_id=resource_id,
        )

    def has_permission(
        self,
        session: Session,
        principals: Sequence[Principal],
        resource_type: str,
        resource_id: str,
        required_permission: int,
    ) -> bool:
        """True iff a single matching entry holds every required bit."""
        required = validate_required_permission(required_permission)
        if not principals:
            return False
        entry = self.acl_repo.find_one(
            session,
            self.acl_repo.principals_clause(principals),
            self.acl_repo.bits_all_set_clause(required),
            resource_type=resource_type,
            resource_id=resource_id,
        )
        return entry is not None

    def get_effective_permissions(
        self,
        session: Session,
        principals: Sequence[Principal],
        resource_type: str,
        resource_id: str,
    ) -> int:
        """Bitwise OR of every matching entry's bits; 0 when nothing matches."""
        bits = 0
        for entry in self.find_entries_by_principals_and_resource(session, principals, resource_type, resource_id):
            bits |= entry.perm_bits
        return bits

    def get_effective_permissions_for_resources(
        self,
        session: Session,
        principals: Sequence[Principal],
        resource_type: str,
        resource_ids: Sequence[str],
    ) -> Dict[str, int]:
        """
        Effective bits for many resources in one query.

        Ids with no matching entry are left out of the result rather than
        mapped to 0.
        """
        if not principals or not resource_ids:
            return {}
        stmt = select(AclEntryModel.resource_id, AclEntryModel.perm_bits).where(
            self.acl_repo.principals_clause(principals),
            AclEntryModel.resource_type == resource_type,
            AclEntryModel.resource_id.in_(list(dict.fromkeys(resource_ids))),
        )
        permissions: Dict[str, int] = {}
        for resource_id, perm_bits in session.execute(stmt):
            permissions[resource_id] = permissions.get(resource_id, 0) | perm_bits
        return permissions

    def find_accessible_resources(
        self,
        session: Session,
        principals: Sequence[Principal],
        resource_type: str,
        required_permission: int,
    ) -> List[str]:
        required = validate_required_permission(required_permission)
        if not principals:
            return []
        return self.acl_repo.find_resource_ids(
            session,
            self.acl_repo.principals_clause(principals),
            self.acl_repo.bits_all_set_clause(required),
            resource_type=resource_type,
        )

    def find_publicly_accessible_resources(
        self, session: Session, resource_type: str, required_permission: int
    ) -> List[str]:
        required = validate_required_permission(required_permission)
        return self.acl_repo.find_resource_ids(
            session,
            self.acl_repo.bits_all_set_clause(required),
            principal_type=PrincipalType.PUBLIC,
            resource_type=resource_type,
        )

    def has_public_permission(
        self, session: Session, resource_type: str, resource_id: str, required_permission: int
    ) -> bool:
        required = validate_required_permission(required_permission)
        entry = self.acl_repo.find_one(
            session,
            self.acl_repo.bits_all_set_clause(required),
            principal_type=PrincipalType.PUBLIC,
            resource_type=resource_type,
            resource_id=resource_id,
        )
        return entry is not None

    def find_entries_by_principal(
        self,
        session: Session,
        principal_type: Any,
        principal_id: Optional[str],
        resource_type: Optional[str] = None,
    ) -> List[AclEntryModel]:
        filters: Dict[str, Any] = {"principal_type": principal_type, "principal_id": principal_id}
        if resource_type:
            filters["resource_type"] = resource_type
        return self.acl_repo.find(session, **filters)

    def find_entries_by_resource(
        self, session: Session, resource_type: str, resource_id: str
    ) -> List[AclEntryModel]:
        return self.acl_repo.find(session, resource_type=resource_type, resource_id=resource_id)
