"""
Database access for the CCM instruction store.

DatabaseSettings describes where the store lives (environment or the
database section of config.yaml). DatabaseSessionProvider owns the engine
and hands out sessions two ways:

- session_scope(): commit on success, roll back on error. Used for reads.
- get_unit_of_work(): the caller commits explicitly. Used for writes, so the
  hierarchy lookup and the instruction write land in one transaction.

Sessions never expire on commit; objects handed back to callers stay loaded
after the session closes.
"""

import os
import logging
from typing import Generator, Optional, Callable
from contextlib import contextmanager
from dataclasses import dataclass

from sqlalchemy import create_engine, text, Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import QueuePool
from sqlalchemy.exc import OperationalError
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
    before_sleep_log
)

from ccm.models import Base

logger = logging.getLogger(__name__)


# ============================================
# SETTINGS
# ============================================

@dataclass
class DatabaseSettings:
    """Connection target and pool sizing for the CCM store."""
    host: str = "localhost"
    port: int = 5432
    database: str = "ccm_database"
    user: str = "ccm_user"
    password: str = "ccm_password"
    url: Optional[str] = None
    pool_size: int = 5
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 1800
    echo: bool = False

    @classmethod
    def from_env(cls) -> 'DatabaseSettings':
        """Read DB_* variables; DATABASE_URL replaces the host/port/name parts."""
        return cls(
            host=os.getenv("DB_HOST", "localhost"),
            port=int(os.getenv("DB_PORT", "5432")),
            database=os.getenv("DB_NAME", "ccm_database"),
            user=os.getenv("DB_USER", "ccm_user"),
            password=os.getenv("DB_PASSWORD", "ccm_password"),
            url=os.getenv("DATABASE_URL") or None,
            pool_size=int(os.getenv("DB_POOL_SIZE", "5")),
            max_overflow=int(os.getenv("DB_MAX_OVERFLOW", "10")),
            pool_timeout=int(os.getenv("DB_POOL_TIMEOUT", "30")),
            pool_recycle=int(os.getenv("DB_POOL_RECYCLE", "1800")),
            echo=os.getenv("DB_ECHO", "false").lower() == "true"
        )

    @classmethod
    def from_config(cls, config) -> 'DatabaseSettings':
        """
        Build settings from a config_manager.DatabaseConfig section.

        DATABASE_URL in the environment still wins over the file.
        """
        return cls(
            host=config.host,
            port=config.port,
            database=config.name,
            user=config.user,
            password=config.password,
            url=os.getenv("DATABASE_URL") or config.url,
            pool_size=config.pool_size,
            max_overflow=config.max_overflow,
            pool_timeout=config.pool_timeout,
            pool_recycle=config.pool_recycle,
            echo=config.echo
        )

    def get_url(self) -> str:
        if self.url:
            return self.url
        return f"postgresql+psycopg2://{self.user}:{self.password}@{self.host}:{self.port}/{self.database}"

    def get_pool_settings(self) -> dict:
        """Keyword arguments for create_engine on a pooled server database."""
        return {
            "poolclass": QueuePool,
            "pool_size": self.pool_size,
            "max_overflow": self.max_overflow,
            "pool_timeout": self.pool_timeout,
            "pool_recycle": self.pool_recycle,
            "pool_pre_ping": True,
        }


# ============================================
# RETRY
# ============================================

def create_retry_decorator(
    max_attempts: int = 3,
    min_wait: float = 1,
    max_wait: float = 10
) -> Callable:
    """
    Retry on OperationalError (server down, restarting, refusing
    connections) with exponential backoff. Anything else fails at once.
    """
    return retry(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=1, min=min_wait, max=max_wait),
        retry=retry_if_exception_type(OperationalError),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True
    )


db_retry = create_retry_decorator()


# ============================================
# UNIT OF WORK
# ============================================

class UnitOfWork:
    """
    One session, one transaction, explicit commit.

    Leaving the block without commit() discards the work; leaving it with
    an exception rolls back first.

        with provider.get_unit_of_work() as uow:
            repo = CCMInstructionRepository(uow.session, directory)
            repo.update(instruction_id, fields)
            uow.commit()
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory
        self._session: Optional[Session] = None

    def __enter__(self) -> 'UnitOfWork':
        self._session = self._session_factory()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is not None:
            self.rollback()
        self.close()

    @property
    def session(self) -> Session:
        if self._session is None:
            raise RuntimeError("UnitOfWork used outside its with-block")
        return self._session

    def commit(self) -> None:
        if self._session:
            self._session.commit()

    def rollback(self) -> None:
        if self._session:
            self._session.rollback()

    def close(self) -> None:
        if self._session:
            self._session.close()
            self._session = None


# ============================================
# SESSION PROVIDER
# ============================================

class DatabaseSessionProvider:
    """
    Engine and session factory for the CCM store.

        provider = DatabaseSessionProvider(DatabaseSettings.from_env())
        provider.init()
        service = CCMInstructionService(provider)
    """

    def __init__(
        self,
        settings: Optional[DatabaseSettings] = None,
        engine: Optional[Engine] = None
    ):
        """
        Args:
            settings: Connection settings (environment when omitted)
            engine: Ready-made engine, used as is (SQLite in tests)
        """
        self._settings = settings or DatabaseSettings.from_env()
        self._engine = engine
        self._session_factory: Optional[sessionmaker] = None
        self._initialized = False

    def init(self, echo: Optional[bool] = None) -> None:
        """Create the engine (unless one was given) and the session factory."""
        if self._initialized:
            return

        if echo is not None:
            self._settings.echo = echo

        if self._engine is None:
            self._engine = self._create_engine_with_retry()

        self._session_factory = sessionmaker(
            bind=self._engine,
            autocommit=False,
            autoflush=False,
            expire_on_commit=False
        )

        self._initialized = True
        logger.info(f"CCM store connected ({self._engine.dialect.name})")

    @db_retry
    def _create_engine_with_retry(self) -> Engine:
        url = self._settings.get_url()
        if url.startswith("sqlite"):
            engine = create_engine(url, echo=self._settings.echo)
        else:
            engine = create_engine(url, echo=self._settings.echo, **self._settings.get_pool_settings())

        # Fail here, inside the retry, rather than on the first query
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))

        return engine

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            raise RuntimeError("DatabaseSessionProvider.init() has not been called")
        return self._engine

    @property
    def session_factory(self) -> sessionmaker:
        if self._session_factory is None:
            raise RuntimeError("DatabaseSessionProvider.init() has not been called")
        return self._session_factory

    def get_unit_of_work(self) -> UnitOfWork:
        if self._session_factory is None:
            self.init()
        return UnitOfWork(self._session_factory)

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """Session that commits when the block succeeds and rolls back when it raises."""
        if self._session_factory is None:
            self.init()

        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def create_tables(self) -> None:
        """Create every mapped table that does not exist yet."""
        if self._engine is None:
            self.init()
        Base.metadata.create_all(self._engine)
        logger.info("CCM tables created")

    def close(self) -> None:
        if self._engine:
            self._engine.dispose()
            logger.info("CCM store connection closed")
        self._initialized = False


# ============================================
# PROCESS-WIDE PROVIDER
# ============================================

_db_provider: Optional[DatabaseSessionProvider] = None


def get_db_provider(settings: Optional[DatabaseSettings] = None) -> DatabaseSessionProvider:
    """Shared provider; settings only apply when it is first created."""
    global _db_provider
    if _db_provider is None:
        _db_provider = DatabaseSessionProvider(settings=settings)
    return _db_provider


def init_db(
    settings: Optional[DatabaseSettings] = None,
    echo: Optional[bool] = None
) -> DatabaseSessionProvider:
    """Initialize and return the shared provider. Scripts call this once at start-up."""
    provider = get_db_provider(settings)
    provider.init(echo=echo)
    return provider


def close_db() -> None:
    """Dispose of the shared provider so the next init_db starts fresh."""
    global _db_provider
    if _db_provider:
        _db_provider.close()
        _db_provider = None


def create_test_provider(
    engine: Optional[Engine] = None,
    settings: Optional[DatabaseSettings] = None
) -> DatabaseSessionProvider:
    """Provider over a caller-built engine, typically in-memory SQLite."""
    return DatabaseSessionProvider(settings=settings, engine=engine)
