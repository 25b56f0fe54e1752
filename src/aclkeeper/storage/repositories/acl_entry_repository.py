"""
ACL entry store.

Owns the ``acl_entries`` rows and exposes find / upsert / delete-by-filter
primitives. Writes on a single (principal, resource) tuple are one SQL
statement each, so concurrent writers on the same tuple are serialized by
the database rather than by the process.
"""

from typing import Any, Dict, List, Optional, Sequence, Tuple
import logging

from sqlalchemy import ColumnElement, and_, delete, or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from aclkeeper.access_control.models import Principal
from aclkeeper.access_control.permissions import PrincipalType
from aclkeeper.storage.models import new_id, utcnow
from aclkeeper.storage.models_access_control import AclEntryModel
from .base import BaseRepository

logger = logging.getLogger(__name__)

_NATIVE_UPSERT = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}

_KEY_COLUMNS = ["principal_type", "principal_id", "resource_type", "resource_id"]
_PUBLIC_KEY_COLUMNS = ["principal_type", "resource_type", "resource_id"]


def _type_value(principal_type: Any) -> str:
    """Plain string for binding; drivers do not all accept str-Enum members."""
    if isinstance(principal_type, PrincipalType):
        return principal_type.value
    return str(principal_type)


class AclEntryRepository(BaseRepository[AclEntryModel]):
    """Repository for ACL entries."""

    model = AclEntryModel

    # --- Filters ---

    def key_clause(
        self,
        principal_type: Any,
        principal_id: Optional[str],
        resource_type: str,
        resource_id: str,
    ) -> ColumnElement[bool]:
        """Match the single row of a (principal, resource) tuple."""
        principal_clause = (
            AclEntryModel.principal_id.is_(None)
            if principal_id is None
            else AclEntryModel.principal_id == principal_id
        )
        return and_(
            AclEntryModel.principal_type == _type_value(principal_type),
            principal_clause,
            AclEntryModel.resource_type == resource_type,
            AclEntryModel.resource_id == resource_id,
        )

    def principals_clause(self, principals: Sequence[Principal]) -> ColumnElement[bool]:
        """
        Match rows granted to any of ``principals`` or to the public.

        PUBLIC rows always match, whatever the list contains.
        """
        clauses = [AclEntryModel.principal_type == PrincipalType.PUBLIC.value]
        for principal in principals:
            if principal.principal_type == PrincipalType.PUBLIC:
                continue
            clauses.append(
                and_(
                    AclEntryModel.principal_type == _type_value(principal.principal_type),
                    AclEntryModel.principal_id == principal.principal_id,
                )
            )
        return or_(*clauses)

    def bits_all_set_clause(self, required_bits: int) -> ColumnElement[bool]:
        return AclEntryModel.perm_bits.op("&")(required_bits) == required_bits

    def filter_clauses(self, **filters: Any) -> List[ColumnElement[bool]]:
        """
        Translate keyword filters to column criteria.

        Scalars compare for equality, None matches NULL, and lists, tuples or
        sets become IN clauses.
        """
        clauses = []
        for field, value in filters.items():
            column = getattr(AclEntryModel, field)
            if field == "principal_type" and value is not None and not isinstance(value, (list, tuple, set)):
                value = _type_value(value)
            if value is None:
                clauses.append(column.is_(None))
            elif isinstance(value, (list, tuple, set)):
                clauses.append(column.in_(list(value)))
            else:
                clauses.append(column == value)
        return clauses

    # --- Queries ---

    def find(self, session: Session, *criteria: ColumnElement[bool], **filters: Any) -> List[AclEntryModel]:
        stmt = select(AclEntryModel).where(*criteria, *self.filter_clauses(**filters))
        return list(session.scalars(stmt).all())

    def find_one(self, session: Session, *criteria: ColumnElement[bool], **filters: Any) -> Optional[AclEntryModel]:
        stmt = select(AclEntryModel).where(*criteria, *self.filter_clauses(**filters)).limit(1)
        return session.scalars(stmt).first()

    def find_resource_ids(self, session: Session, *criteria: ColumnElement[bool], **filters: Any) -> List[str]:
        """Distinct resource ids of the matching rows."""
        stmt = (
            select(AclEntryModel.resource_id)
            .where(*criteria, *self.filter_clauses(**filters))
            .distinct()
        )
        return list(session.scalars(stmt).all())

    # --- Writes ---

    def upsert(
        self,
        session: Session,
        principal_type: Any,
        principal_id: Optional[str],
        resource_type: str,
        resource_id: str,
        perm_bits: int,
        granted_by: Optional[str],
        role_id: Optional[str] = None,
        inherited_from: Optional[str] = None,
    ) -> Tuple[AclEntryModel, bool]:
        """
        Create or replace the entry for a (principal, resource) tuple.

        Replace semantics: an existing row gets the new bits, role, grantor
        and timestamp; bits are never OR-ed with the previous value.
        Returns ``(entry, created)``.
        """
        values = {
            "id": new_id(),
            "principal_type": _type_value(principal_type),
            "principal_id": principal_id,
            "resource_type": resource_type,
            "resource_id": resource_id,
            "perm_bits": perm_bits,
            "role_id": role_id,
            "granted_by": granted_by,
            "granted_at": utcnow(),
            "inherited_from": inherited_from,
        }
        insert_fn = _NATIVE_UPSERT.get(session.get_bind().dialect.name)
        if insert_fn is None:
            logger.debug("No native upsert for dialect %s, locking row", session.get_bind().dialect.name)
            return self._locking_upsert(session, values)

        stmt = insert_fn(AclEntryModel).values(**values)
        if principal_id is None:
            stmt = stmt.on_conflict_do_update(
                index_elements=_PUBLIC_KEY_COLUMNS,
                index_where=AclEntryModel.principal_id.is_(None),
                set_=self._replace_values(stmt),
            )
        else:
            stmt = stmt.on_conflict_do_update(
                index_elements=_KEY_COLUMNS,
                set_=self._replace_values(stmt),
            )

        entry = session.scalars(
            stmt.returning(AclEntryModel),
            execution_options={"populate_existing": True},
        ).one()
        return entry, entry.id == values["id"]

    @staticmethod
    def _replace_values(stmt) -> Dict[str, Any]:
        return {
            "perm_bits": stmt.excluded.perm_bits,
            "role_id": stmt.excluded.role_id,
            "granted_by": stmt.excluded.granted_by,
            "granted_at": stmt.excluded.granted_at,
        }

    def _locking_upsert(self, session: Session, values: Dict[str, Any]) -> Tuple[AclEntryModel, bool]:
        """Row-locking fallback for dialects without ON CONFLICT."""
        key = self.key_clause(
            values["principal_type"], values["principal_id"], values["resource_type"], values["resource_id"]
        )
        existing = session.scalars(select(AclEntryModel).where(key).with_for_update()).first()
        if existing:
            existing.perm_bits = values["perm_bits"]
            existing.role_id = values["role_id"]
            existing.granted_by = values["granted_by"]
            existing.granted_at = values["granted_at"]
            session.flush()
            return existing, False

        entry = AclEntryModel(**values)
        return self.create(session, entry), True

    def update_bits(
        self,
        session: Session,
        principal_type: Any,
        principal_id: Optional[str],
        resource_type: str,
        resource_id: str,
        add_bits: int = 0,
        remove_bits: int = 0,
    ) -> Optional[AclEntryModel]:
        """
        Apply ``(bits | add_bits) & ~remove_bits`` to an existing entry in one UPDATE.

        Returns None when the tuple has no entry; nothing is created.
        """
        new_bits = AclEntryModel.perm_bits.op("|")(add_bits).op("&")(~remove_bits)
        stmt = (
            update(AclEntryModel)
            .where(self.key_clause(principal_type, principal_id, resource_type, resource_id))
            .values(perm_bits=new_bits)
            .returning(AclEntryModel)
        )
        return session.scalars(
            stmt,
            execution_options={"populate_existing": True, "synchronize_session": False},
        ).one_or_none()

    def delete_many(self, session: Session, *criteria: ColumnElement[bool], **filters: Any) -> int:
        """Delete every matching row; returns the deleted count."""
        stmt = delete(AclEntryModel).where(*criteria, *self.filter_clauses(**filters))
        # "evaluate" keeps this a plain DELETE so rowcount is reliable on every driver
        result = session.execute(stmt, execution_options={"synchronize_session": "evaluate"})
        return result.rowcount or 0

    def find_one_and_delete(self, session: Session, *criteria: ColumnElement[bool], **filters: Any) -> Optional[AclEntryModel]:
        entry = self.find_one(session, *criteria, **filters)
        if entry is None:
            return None
        session.delete(entry)
        session.flush()
        return entry

    def delete_for_resource(self, session: Session, resource_type: str, resource_id: str) -> int:
        return self.delete_many(session, resource_type=resource_type, resource_id=resource_id)
