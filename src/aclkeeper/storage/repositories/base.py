from typing import Any, ClassVar, Dict, Generic, List, Optional, Sequence, Type, TypeVar
from sqlalchemy import select
from sqlalchemy.orm import Session

from aclkeeper.storage.models import Base

T = TypeVar("T", bound=Base)


class BaseRepository(Generic[T]):
    """
    CRUD over one mapped class, always against a caller-provided Session.

    Writes flush but never commit; the transaction belongs to the caller.
    """

    model: ClassVar[Type[Base]]
    list_order: ClassVar[Sequence[str]] = ()

    def create(self, session: Session, entity: T) -> T:
        session.add(entity)
        session.flush()
        return entity

    def get(self, session: Session, id: str) -> Optional[T]:
        return session.get(self.model, id)

    def update(self, session: Session, id: str, updates: Dict[str, Any]) -> Optional[T]:
        entity = self.get(session, id)
        if not entity:
            return None
        for key, value in updates.items():
            setattr(entity, key, value)
        session.flush()
        return entity

    def delete(self, session: Session, id: str) -> bool:
        entity = self.get(session, id)
        if not entity:
            return False
        session.delete(entity)
        session.flush()
        return True

    def list(self, session: Session, limit: Optional[int] = 100, offset: int = 0) -> List[T]:
        order = [getattr(self.model, column) for column in self.list_order]
        stmt = select(self.model).order_by(*order).limit(limit).offset(offset)
        return list(session.scalars(stmt).all())
