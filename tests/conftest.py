"""
Pytest configuration and shared fixtures.
"""

import os
import sys
import pytest

sys.path.append(os.path.join(os.getcwd(), "src"))

# Settings are read once at import time
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("ADMIN_ROLE", "ADMIN")

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from aclkeeper.access_control.roles import AccessRoleRegistry
from aclkeeper.storage.models import Base
from aclkeeper.storage.models_groups import GroupMemberModel, GroupModel
from aclkeeper.storage.repositories.group_repository import GroupRepository


@pytest.fixture
def engine():
    """Fresh in-memory SQLite database per test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # pysqlite manages transactions itself and breaks SAVEPOINT; let SQLAlchemy emit BEGIN
    @event.listens_for(engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def session(session_factory):
    session = session_factory()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def seeded_roles(session):
    """Default VIEWER/EDITOR/OWNER roles for every built-in resource type."""
    return AccessRoleRegistry().seed_default_roles(session)


@pytest.fixture
def make_group(session):
    """Insert a group with the given members, as an external directory would."""
    repo = GroupRepository()

    def _make(name, member_ids=()):
        group = GroupModel(name=name, members=[GroupMemberModel(member_id=m) for m in member_ids])
        return repo.create(session, group)

    return _make
