import logging
from typing import Generator, Optional

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from billing.config import config

# Configure logging
logger = logging.getLogger(__name__)


def _engine_kwargs(url: str) -> dict:
    """Pool settings per backend; SQLite is used for development and tests"""
    if url.startswith("sqlite"):
        kwargs = {
            "connect_args": {
                "check_same_thread": False,
                "timeout": config.SQLITE_BUSY_TIMEOUT,
            },
        }
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return kwargs

    return {
        "pool_size": config.DB_POOL_SIZE,
        "max_overflow": config.DB_MAX_OVERFLOW,
        "pool_pre_ping": True,
        "pool_recycle": config.DB_POOL_RECYCLE_SECONDS,
    }


def _enable_sqlite_write_locking(engine: Engine) -> None:
    """
    Open every SQLite transaction with BEGIN IMMEDIATE.

    SQLite ignores SELECT ... FOR UPDATE, so the database-level write lock
    stands in for the row lock: a second writer blocks until the first commits.
    """

    @event.listens_for(engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_db_engine(url: Optional[str] = None) -> Engine:
    """Create an engine for the given URL (defaults to the configured database)"""
    url = url or config.effective_database_url

    # Validate connection string format
    if not url.startswith(("postgresql", "sqlite")):
        raise ValueError(
            "DATABASE_URL must be a valid PostgreSQL connection string "
            "starting with 'postgresql://' (or 'sqlite://' for development)"
        )

    engine = create_engine(url, echo=config.SQL_ECHO, **_engine_kwargs(url))
    if engine.dialect.name == "sqlite":
        _enable_sqlite_write_locking(engine)
    return engine


# Create engine
try:
    engine = create_db_engine()
    logger.info(f"Successfully configured {engine.dialect.name} database engine")
except Exception as e:
    logger.error(f"Failed to create database engine: {str(e)}")
    raise

# Session configuration
SessionLocal = sessionmaker(
    autoflush=False,
    bind=engine,
    expire_on_commit=False
)


class DatabaseManager:
    """Database manager for handling connections and schema"""

    @staticmethod
    def get_db() -> Generator[Session, None, None]:
        """
        Provide a database session and ensure proper cleanup.
        """
        db = SessionLocal()
        try:
            yield db
        except Exception as e:
            logger.error(f"Database session error: {str(e)}")
            db.rollback()
            raise
        finally:
            db.close()

    @staticmethod
    def create_tables(bind: Optional[Engine] = None) -> None:
        """Create all ledger tables (development and tests; production uses Alembic)"""
        from models import Base

        Base.metadata.create_all(bind=bind or engine)
        logger.info("Ledger tables created")

    @staticmethod
    def test_connection(bind: Optional[Engine] = None) -> bool:
        """Test database connectivity"""
        try:
            with (bind or engine).connect() as connection:
                result = connection.execute(text("SELECT 1"))
                result.fetchone()
            logger.info("Database connection test successful")
            return True
        except Exception as e:
            logger.error(f"Database connection test failed: {str(e)}")
            return False

    @staticmethod
    def get_connection_info(bind: Optional[Engine] = None) -> dict:
        """Get database connection information (without sensitive data)"""
        url = (bind or engine).url
        return {
            "database": url.database,
            "host": url.host,
            "port": url.port,
            "driver": url.drivername,
        }
