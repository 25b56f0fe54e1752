from sqlalchemy import create_engine, text
from sqlalchemy.engine import make_url
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from typing import Any, Dict, Generator, Optional
from contextlib import contextmanager
import logging

from pydantic import SecretStr
from pydantic_settings import BaseSettings
from .models import Base

logger = logging.getLogger(__name__)


class PostgresConfig(BaseSettings):
    """Database settings. POSTGRES_* build the URL unless DATABASE_URL is set."""
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: SecretStr = "postgres"
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "aclkeeper"
    POSTGRES_POOL_SIZE: int = 5
    POSTGRES_MAX_OVERFLOW: int = 10
    DATABASE_URL: Optional[str] = None

    model_config = {"env_file": ".env", "extra": "ignore"}

    @property
    def connection_string(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD.get_secret_value()}@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"


class PostgresAdapter:
    """
    Owns the SQLAlchemy engine and hands out transactional sessions.

    The ACL engine needs a database with native upserts for its atomicity
    guarantees, which means PostgreSQL in production. SQLite URLs are
    accepted for local runs.
    """

    def __init__(self, config: PostgresConfig):
        self.config = config
        self._engine = None
        self._session_factory = None

    @property
    def is_connected(self) -> bool:
        return self._engine is not None

    def _engine_options(self, url) -> Dict[str, Any]:
        if url.get_backend_name() != "sqlite":
            return {
                "pool_size": self.config.POSTGRES_POOL_SIZE,
                "max_overflow": self.config.POSTGRES_MAX_OVERFLOW,
                "pool_pre_ping": True,
            }
        options: Dict[str, Any] = {"connect_args": {"check_same_thread": False}}
        if url.database in (None, "", ":memory:"):
            # One shared connection, otherwise every checkout sees an empty database
            options["poolclass"] = StaticPool
        return options

    def connect(self) -> None:
        if self._engine:
            return

        url = make_url(self.config.connection_string)
        try:
            logger.info(f"Connecting to {url.render_as_string(hide_password=True)}")
            self._engine = create_engine(url, **self._engine_options(url))
            self._session_factory = sessionmaker(bind=self._engine, expire_on_commit=False)
            logger.info("Database connection pool established.")
        except Exception as e:
            logger.error(f"Failed to connect to database: {e}")
            raise

    def close(self) -> None:
        if self._engine:
            self._engine.dispose()
            self._engine = None
            self._session_factory = None
            logger.info("Database connection pool closed.")

    def health_check(self) -> bool:
        if not self._engine:
            return False
        try:
            with self._engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except Exception:
            logger.exception("database unhealthy")
            return False

    def create_tables(self) -> None:
        """Create the ACL tables directly; production deployments run the Alembic revision instead."""
        if not self._engine:
            raise ConnectionError("Database is not connected. Call connect() first.")
        Base.metadata.create_all(self._engine)

    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        """
        Transactional scope: commit on success, roll back on any error.
        """
        if not self._session_factory:
            raise ConnectionError("Database is not connected. Call connect() first.")

        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()
