"""
Storage - Database.

============================================================
RESPONSIBILITY
============================================================
Manages the database engine and sessions.

- Provides connection pooling
- Manages session lifecycle (commit / rollback / close)
- Creates the schema
- Health checks for connections

============================================================
DESIGN PRINCIPLES
============================================================
- Explicitly constructed handle; no module-level engine
- Sync SQLAlchemy sessions; async callers use worker threads
- Hard failures on persistence errors

============================================================
DATABASE REQUIREMENTS
============================================================
- PostgreSQL as primary database (psycopg2)
- SQLite accepted for local runs and tests

============================================================
"""

import logging
import os
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Generator, List, Optional

from dotenv import load_dotenv
from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from storage.models.base import Base
from storage.repositories.exceptions import StoreUnavailableError, TransactionError


load_dotenv()

logger = logging.getLogger(__name__)


@dataclass
class DatabaseConfig:
    """Connection settings for the activity store."""
    url: str = ""
    pool_size: int = 5
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 1800
    echo: bool = False

    @classmethod
    def from_env(cls) -> "DatabaseConfig":
        """
        Load configuration from environment variables.

        Environment variables:
        - DATABASE_URL
        - DATABASE_POOL_SIZE
        - DATABASE_ECHO
        """
        url = os.getenv("DATABASE_URL", "")
        if url.startswith("postgresql+asyncpg"):
            # Sessions are sync
            url = url.replace("postgresql+asyncpg", "postgresql")
        return cls(
            url=url,
            pool_size=int(os.getenv("DATABASE_POOL_SIZE", "5")),
            echo=os.getenv("DATABASE_ECHO", "false").lower() in ("1", "true", "yes"),
        )

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith("sqlite")

    @property
    def safe_url(self) -> str:
        """URL without credentials, for logs."""
        return self.url.split("@")[-1]

    def validate(self) -> List[str]:
        errors = []
        if not self.url:
            errors.append("DATABASE_URL is required")
        if self.pool_size < 1:
            errors.append("pool_size must be at least 1")
        return errors


class Database:
    """
    Engine and session factory for one store.

    Usage:
        with Database(DatabaseConfig(url="sqlite://")) as db:
            db.create_schema()
            with db.session_scope() as session:
                ...
    """

    def __init__(self, config: DatabaseConfig) -> None:
        self._config = config
        self._engine: Optional[Engine] = None
        self._session_factory: Optional[sessionmaker] = None

    @property
    def config(self) -> DatabaseConfig:
        return self._config

    @property
    def is_open(self) -> bool:
        return self._engine is not None

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            raise StoreUnavailableError("engine", "Database is not open")
        return self._engine

    def open(self) -> "Database":
        """Create the engine and session factory."""
        if self._engine is not None:
            return self

        logger.info(f"Opening database: {self._config.safe_url}")
        try:
            self._engine = create_engine(self._config.url, **self._engine_options())
        except (SQLAlchemyError, ImportError, ValueError) as e:
            raise StoreUnavailableError("open", str(e)) from e

        @event.listens_for(self._engine, "connect")
        def on_connect(dbapi_conn: Any, connection_record: Any) -> None:
            logger.debug("Database connection established")

        self._session_factory = sessionmaker(
            bind=self._engine,
            autoflush=False,
            expire_on_commit=False,
        )
        return self

    def _engine_options(self) -> Dict[str, Any]:
        if self._config.is_sqlite:
            options: Dict[str, Any] = {
                "echo": self._config.echo,
                "connect_args": {"check_same_thread": False},
            }
            if self._config.url in ("sqlite://", "sqlite:///:memory:"):
                # One shared connection, otherwise every session sees an empty db
                options["poolclass"] = StaticPool
            return options
        return {
            "pool_size": self._config.pool_size,
            "max_overflow": self._config.max_overflow,
            "pool_timeout": self._config.pool_timeout,
            "pool_recycle": self._config.pool_recycle,
            "pool_pre_ping": True,
            "echo": self._config.echo,
        }

    def close(self) -> None:
        """Dispose the engine and its pool."""
        if self._engine is not None:
            self._engine.dispose()
            logger.info("Database closed")
        self._engine = None
        self._session_factory = None

    def __enter__(self) -> "Database":
        return self.open()

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    def session(self) -> Session:
        """
        Get a new session.

        Caller is responsible for committing/closing.
        Prefer session_scope().
        """
        if self._session_factory is None:
            raise StoreUnavailableError("session", "Database is not open")
        return self._session_factory()

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """
        Transaction boundary: commit on success, rollback on any exception.

        Usage:
            with db.session_scope() as session:
                UserRepository(session).upsert_user(address)
        """
        session = self.session()
        try:
            yield session
            session.commit()
        except OperationalError as e:
            logger.error(f"Database unavailable, rolling back: {e}")
            session.rollback()
            raise StoreUnavailableError("transaction", str(e)) from e
        except SQLAlchemyError as e:
            logger.error(f"Database transaction failed, rolling back: {e}")
            session.rollback()
            raise TransactionError("session", "transaction", "commit", str(e)) from e
        except BaseException:
            session.rollback()
            raise
        finally:
            session.close()

    def create_schema(self) -> None:
        """Create all tables and indexes (idempotent)."""
        # Registers the models on Base.metadata
        from storage import models  # noqa: F401

        try:
            logger.info("Creating database tables...")
            Base.metadata.create_all(bind=self.engine)
            logger.info("Database tables created successfully")
        except OperationalError as e:
            raise StoreUnavailableError("create_schema", str(e)) from e

    def drop_schema(self) -> None:
        from storage import models  # noqa: F401

        Base.metadata.drop_all(bind=self.engine)

    def health_check(self) -> bool:
        """Return True when a trivial query succeeds."""
        if self._engine is None:
            return False
        try:
            with self._engine.connect() as conn:
                conn.execute(text("SELECT 1")).fetchone()
            return True
        except SQLAlchemyError as e:
            logger.warning(f"Database health check failed: {e}")
            return False
