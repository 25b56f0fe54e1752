from typing import Generator
from sqlalchemy.orm import Session

from aclkeeper.access_control.permissions import register_resource_types
from aclkeeper.access_control.roles import AccessRoleRegistry
from aclkeeper.platform.config import settings
from aclkeeper.platform.logging import get_logger
from aclkeeper.storage.postgres_adapter import PostgresAdapter, PostgresConfig

logger = get_logger(__name__)

# Singleton
_postgres_adapter: PostgresAdapter | None = None

def get_postgres_adapter() -> PostgresAdapter:
    global _postgres_adapter
    if not _postgres_adapter:
        _postgres_adapter = PostgresAdapter(PostgresConfig())
    return _postgres_adapter

def get_db() -> Generator[Session, None, None]:
    """Request-scoped session; committed when the request succeeds."""
    adapter = get_postgres_adapter()
    with adapter.get_session() as session:
        yield session

def init_database() -> None:
    """Connect, register configured resource types and seed the default roles."""
    adapter = get_postgres_adapter()
    adapter.connect()
    if adapter.config.connection_string.startswith("sqlite"):
        adapter.create_tables()

    if settings.extra_resource_types:
        register_resource_types(settings.extra_resource_types)
        logger.info("Registered extra resource types", resource_types=settings.extra_resource_types)

    if settings.SEED_DEFAULT_ROLES:
        with adapter.get_session() as session:
            AccessRoleRegistry().seed_default_roles(session)

def close_postgres_adapter() -> None:
    global _postgres_adapter
    if _postgres_adapter:
        _postgres_adapter.close()
        _postgres_adapter = None
