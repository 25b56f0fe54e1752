from typing import Any, Dict, List, Optional
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from aclkeeper.storage.models_access_control import AccessRoleModel
from .base import BaseRepository


class AccessRoleRepository(BaseRepository[AccessRoleModel]):
    """Repository for access roles (named permission bundles)."""

    model = AccessRoleModel
    list_order = ("resource_type", "perm_bits")

    # --- Lookups ---

    def get_by_identifier(self, session: Session, access_role_id: str) -> Optional[AccessRoleModel]:
        stmt = select(AccessRoleModel).where(AccessRoleModel.access_role_id == access_role_id)
        return session.scalars(stmt).first()

    def list_by_resource_type(self, session: Session, resource_type: str) -> List[AccessRoleModel]:
        stmt = (
            select(AccessRoleModel)
            .where(AccessRoleModel.resource_type == resource_type)
            .order_by(AccessRoleModel.perm_bits)
        )
        return list(session.scalars(stmt).all())

    def get_by_permissions(self, session: Session, resource_type: str, perm_bits: int) -> Optional[AccessRoleModel]:
        stmt = select(AccessRoleModel).where(
            AccessRoleModel.resource_type == resource_type,
            AccessRoleModel.perm_bits == perm_bits,
        )
        return session.scalars(stmt).first()

    def list_all(self, session: Session) -> List[AccessRoleModel]:
        return self.list(session, limit=None)

    def update_by_identifier(
        self, session: Session, access_role_id: str, updates: Dict[str, Any]
    ) -> Optional[AccessRoleModel]:
        role = self.get_by_identifier(session, access_role_id)
        if not role:
            return None
        return self.update(session, role.id, updates)

    def delete_by_identifier(self, session: Session, access_role_id: str) -> bool:
        role = self.get_by_identifier(session, access_role_id)
        if not role:
            return False
        return self.delete(session, role.id)

    def insert_if_absent(self, session: Session, role: AccessRoleModel) -> AccessRoleModel:
        """
        Insert ``role`` unless its access_role_id exists; return the stored row either way.

        A concurrent seeder may win the race, so the insert runs in a
        savepoint and falls back to the winner's row on a unique violation.
        """
        existing = self.get_by_identifier(session, role.access_role_id)
        if existing:
            return existing
        try:
            with session.begin_nested():
                session.add(role)
            return role
        except IntegrityError:
            return self.get_by_identifier(session, role.access_role_id)
