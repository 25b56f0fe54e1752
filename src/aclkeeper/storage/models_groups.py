from datetime import datetime
from typing import List, Optional

from sqlalchemy import String, Text, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from aclkeeper.storage.models import Base, TIMESTAMP_TYPE, new_id, utcnow


class GroupModel(Base):
    """
    A set of users that can be granted permissions as a whole.

    Membership may be maintained locally or mirrored from an external
    directory (``source`` / ``id_on_the_source``). The ACL engine only reads it.
    """
    __tablename__ = "groups"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    email: Mapped[Optional[str]] = mapped_column(String, index=True)
    source: Mapped[str] = mapped_column(String, nullable=False, default="local")
    id_on_the_source: Mapped[Optional[str]] = mapped_column(String)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP_TYPE, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP_TYPE, default=utcnow, onupdate=utcnow)

    members: Mapped[List["GroupMemberModel"]] = relationship(
        back_populates="group",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __table_args__ = (
        Index('ix_groups_source_external', 'source', 'id_on_the_source'),
    )

    @property
    def member_ids(self) -> List[str]:
        return [m.member_id for m in self.members]


class GroupMemberModel(Base):
    __tablename__ = "group_members"

    group_id: Mapped[str] = mapped_column(
        ForeignKey("groups.id", ondelete="CASCADE"), primary_key=True
    )
    # Opaque user id; users live in the identity service, not here
    member_id: Mapped[str] = mapped_column(String, primary_key=True, index=True)

    group: Mapped["GroupModel"] = relationship(back_populates="members")
