from datetime import datetime
from typing import Optional

from sqlalchemy import String, Integer, Text, Index, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column

from aclkeeper.storage.models import Base, TIMESTAMP_TYPE, new_id, utcnow


class AclEntryModel(Base):
    """
    One grant of permission bits to a principal on a resource.

    At most one row exists per (principal_type, principal_id, resource_type,
    resource_id). PUBLIC rows carry a NULL principal_id, which a plain unique
    constraint would never treat as a duplicate, so they get their own partial
    unique index.
    """
    __tablename__ = "acl_entries"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_id)
    principal_type: Mapped[str] = mapped_column(String, nullable=False)
    principal_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    resource_type: Mapped[str] = mapped_column(String, nullable=False)
    resource_id: Mapped[str] = mapped_column(String, nullable=False)
    perm_bits: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    role_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    granted_by: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    granted_at: Mapped[datetime] = mapped_column(TIMESTAMP_TYPE, default=utcnow)
    inherited_from: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    __table_args__ = (
        UniqueConstraint(
            'principal_type', 'principal_id', 'resource_type', 'resource_id',
            name='uq_acl_principal_resource',
        ),
        Index(
            'uq_acl_public_resource',
            'principal_type', 'resource_type', 'resource_id',
            unique=True,
            postgresql_where=text('principal_id IS NULL'),
            sqlite_where=text('principal_id IS NULL'),
        ),
        Index('ix_acl_resource', 'resource_type', 'resource_id'),
        Index('ix_acl_principal', 'principal_type', 'principal_id', 'resource_type'),
    )

    def __repr__(self) -> str:
        return (
            f"<AclEntry {self.principal_type}:{self.principal_id} "
            f"{self.resource_type}:{self.resource_id} bits={self.perm_bits}>"
        )


class AccessRoleModel(Base):
    """Named permission bundle for one resource type (e.g. agent_viewer -> 1)."""
    __tablename__ = "access_roles"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_id)
    access_role_id: Mapped[str] = mapped_column(String, unique=True, index=True, nullable=False)
    name: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    resource_type: Mapped[str] = mapped_column(String, index=True, nullable=False)
    perm_bits: Mapped[int] = mapped_column(Integer, nullable=False)
