"""
Database configuration and session management
PostgreSQL in production, SQLite for local runs and tests
"""

import logging
from sqlalchemy import create_engine, event, text
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from config import settings

logger = logging.getLogger(__name__)


def build_engine(database_url: str, echo: bool = False):
    """Create an engine with pooling suited to the backing database"""
    if database_url.startswith("sqlite"):
        # Single shared connection so in-memory databases survive across sessions
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            echo=echo
        )

    return create_engine(
        database_url,
        poolclass=QueuePool,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_timeout=settings.DB_POOL_TIMEOUT,
        pool_recycle=settings.DB_POOL_RECYCLE,
        pool_pre_ping=True,
        connect_args={
            "connect_timeout": 30,
            "application_name": "listup-referral-settlement",
            "options": "-c default_transaction_isolation=read_committed"
        },
        echo=echo
    )


engine = build_engine(settings.DATABASE_URL, echo=settings.DEBUG)


@event.listens_for(engine, "connect")
def set_connection_options(dbapi_connection, connection_record):
    """Apply per-connection options"""
    if engine.dialect.name != "sqlite":
        return
    cursor = dbapi_connection.cursor()
    try:
        cursor.execute("PRAGMA foreign_keys=ON")
    finally:
        cursor.close()


# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Create base class for models
Base = declarative_base()


def get_db():
    """Get database session"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


class DatabaseManager:
    """Database management utilities"""

    @staticmethod
    def create_all_tables():
        """Create all database tables"""
        import app.models  # noqa: F401  registers every model on Base.metadata
        Base.metadata.create_all(bind=engine)

    @staticmethod
    def drop_all_tables():
        """Drop all database tables (use with caution)"""
        Base.metadata.drop_all(bind=engine)

    @staticmethod
    def check_connection() -> bool:
        """Return True when the database answers a trivial query"""
        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            return False

    @staticmethod
    def get_pool_status():
        """Get connection pool status for monitoring"""
        pool = engine.pool
        if not isinstance(pool, QueuePool):
            return {"pool_class": type(pool).__name__}
        return {
            "pool_size": pool.size(),
            "checked_out": pool.checkedout(),
            "overflow": pool.overflow(),
            "checked_in": pool.checkedin()
        }
