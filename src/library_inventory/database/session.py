"""
Database session management for the library inventory backend.

``DatabaseManager`` owns the engine and session factory. It is constructed
by the process (the app factory or a script) and passed to whoever needs a
session; there is no module-level store handle.

Key considerations:
- Sessions are short-lived, one per HTTP request
- ``session_scope()`` commits on success and rolls back on error
- Driver errors are wrapped into ``RepositoryException`` by ``safe_query`` and
  ``safe_commit``; ``IntegrityError`` is re-raised untouched so repositories
  can translate constraint violations into domain errors
"""

import logging
from collections.abc import Callable, Generator
from contextlib import contextmanager
from typing import TypeVar

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ..exceptions import RepositoryException
from .schema import Base

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Seconds a SQLite writer waits for a competing transaction before failing
SQLITE_BUSY_TIMEOUT = 15


class DatabaseManager:
    """
    Manages database connections and sessions.

    This class provides:
    - Engine creation tuned per backend (SQLite or server RDBMS)
    - Session factory with explicit transactions
    - Schema initialization and a connectivity probe for health checks
    """

    def __init__(self, database_url: str, echo: bool = False):
        """
        Initialize the database manager.

        Args:
            database_url: SQLAlchemy database URL
            echo: Log emitted SQL
        """
        self.database_url = database_url
        self.echo = echo
        self._engine: Engine | None = None
        self._session_factory: sessionmaker | None = None

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    @property
    def engine(self) -> Engine:
        """
        Get or create the database engine.

        SQLite engines get foreign keys enabled and a busy timeout so that
        concurrent writers queue instead of failing immediately. An in-memory
        SQLite database shares one connection (StaticPool), otherwise every
        session would see a different empty database.
        """
        if self._engine is None:
            if self.is_sqlite:
                in_memory = ":memory:" in self.database_url or self.database_url in (
                    "sqlite://",
                    "sqlite:///",
                )
                engine_kwargs = {
                    "connect_args": {
                        "check_same_thread": False,
                        "timeout": SQLITE_BUSY_TIMEOUT,
                    },
                    "echo": self.echo,
                }
                if in_memory:
                    engine_kwargs["poolclass"] = StaticPool
                self._engine = create_engine(self.database_url, **engine_kwargs)

                @event.listens_for(self._engine, "connect")
                def set_sqlite_pragma(dbapi_connection, connection_record):  # noqa: ARG001
                    cursor = dbapi_connection.cursor()
                    cursor.execute("PRAGMA foreign_keys=ON")
                    cursor.close()
            else:
                self._engine = create_engine(
                    self.database_url,
                    pool_size=10,
                    max_overflow=20,
                    pool_pre_ping=True,
                    echo=self.echo,
                )

            logger.info("Database engine created: %s", self._engine.url)

        return self._engine

    @property
    def session_factory(self) -> sessionmaker:
        """Get or create the session factory."""
        if self._session_factory is None:
            self._session_factory = sessionmaker(
                bind=self.engine,
                autocommit=False,
                autoflush=False,
                expire_on_commit=False,
            )
        return self._session_factory

    def create_session(self) -> Session:
        """Create a new session. Callers own closing it."""
        return self.session_factory()

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """
        Provide a transactional scope for database operations.

        ```python
        with db_manager.session_scope() as session:
            ledger = LoanLedger(session)
            ...
        ```
        """
        session = self.create_session()
        try:
            yield session
            session.commit()
            logger.debug("Database transaction committed successfully")
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def init_database(self, drop_existing: bool = False) -> None:
        """
        Create the schema.

        Args:
            drop_existing: If True, drop all tables before creating
        """
        engine = self.engine

        if drop_existing:
            logger.warning("Dropping all existing tables...")
            Base.metadata.drop_all(bind=engine)

        logger.info("Creating database tables...")
        Base.metadata.create_all(bind=engine)
        logger.info("Database initialization complete")

    def verify_connection(self) -> bool:
        """Return True when a trivial query succeeds."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError:
            logger.exception("Database connection failed")
            return False

    def close(self) -> None:
        """Dispose the engine. Called on process shutdown."""
        if self._engine:
            self._engine.dispose()
            logger.info("Database engine disposed")
        self._engine = None
        self._session_factory = None


def safe_commit(session: Session, operation: str) -> None:
    """
    Commit a session, rolling back on failure.

    Raises:
        IntegrityError: Re-raised as is for constraint translation
        RepositoryException: On any other database failure
    """
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise
    except SQLAlchemyError as e:
        session.rollback()
        logger.exception("Commit failed: %s", operation)
        raise RepositoryException(f"Database operation '{operation}' failed") from e


def safe_query(session: Session, query_func: Callable[[Session], T], error_msg: str) -> T:
    """
    Execute a query, wrapping driver errors.

    Args:
        session: The database session
        query_func: Function that performs the query
        error_msg: Message for the raised error

    Raises:
        IntegrityError: Re-raised as is (flushes inside queries can hit constraints)
        RepositoryException: On any other database failure
    """
    try:
        return query_func(session)
    except IntegrityError:
        raise
    except SQLAlchemyError as e:
        logger.exception("Query failed")
        raise RepositoryException(f"{error_msg}: database query failed") from e
