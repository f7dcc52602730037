import logging
import os
import time
import zlib
from contextlib import contextmanager

from sqlalchemy import create_engine, event, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from .config import ADVISORY_LOCKS_ENABLED, DATABASE_URL
from .exceptions import DatastoreUnavailable

logger = logging.getLogger(__name__)

# Get environment-specific pool settings
POOL_SIZE = int(os.getenv("DB_POOL_SIZE", "20"))
MAX_OVERFLOW = int(os.getenv("DB_MAX_OVERFLOW", "30"))
POOL_TIMEOUT = int(os.getenv("DB_POOL_TIMEOUT", "30"))
POOL_RECYCLE = int(os.getenv("DB_POOL_RECYCLE", "300"))
ENABLE_QUERY_LOGGING = os.getenv("DB_LOG_SLOW_QUERIES", "true").lower() == "true"
SLOW_QUERY_THRESHOLD = float(os.getenv("DB_SLOW_QUERY_THRESHOLD", "1.0"))


def _engine_options(url: str) -> dict:
    """Pool options only apply to server databases; SQLite gets its defaults"""
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {
        "pool_pre_ping": True,  # Test connections before using
        "pool_recycle": POOL_RECYCLE,  # Recycle connections every 5 minutes
        "pool_size": POOL_SIZE,
        "max_overflow": MAX_OVERFLOW,
        "pool_timeout": POOL_TIMEOUT,
    }


try:
    engine = create_engine(DATABASE_URL, echo=False, **_engine_options(DATABASE_URL))
    logger.info("✅ Database engine created successfully")
    if not DATABASE_URL.startswith("sqlite"):
        logger.info(
            f"📊 Connection pool: size={POOL_SIZE}, max_overflow={MAX_OVERFLOW}, timeout={POOL_TIMEOUT}s"
        )
except Exception as e:
    logger.error(f"❌ Failed to create database engine: {e}")
    raise

# Slow query logging for performance monitoring
if ENABLE_QUERY_LOGGING:

    @event.listens_for(engine, "before_cursor_execute")
    def before_cursor_execute(conn, _cursor, statement, _parameters, context, _executemany):
        conn.info.setdefault("query_start_time", []).append(time.time())

    @event.listens_for(engine, "after_cursor_execute")
    def after_cursor_execute(conn, _cursor, statement, _parameters, context, _executemany):
        total = time.time() - conn.info["query_start_time"].pop(-1)
        if total > SLOW_QUERY_THRESHOLD:
            logger.warning(f"🐌 Slow query ({total:.2f}s): {statement[:200]}...")

    logger.info(f"📊 Slow query logging enabled (threshold: {SLOW_QUERY_THRESHOLD}s)")


def enable_sqlite_savepoints(target_engine) -> None:
    """
    Let pysqlite honour SAVEPOINT: SQLAlchemy emits BEGIN itself instead of
    the driver deferring it (recipe from the SQLAlchemy SQLite dialect docs).
    """

    @event.listens_for(target_engine, "connect")
    def _disable_driver_transactions(dbapi_connection, _connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(target_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")


if DATABASE_URL.startswith("sqlite"):
    enable_sqlite_savepoints(engine)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def owner_lock_key(owner_id: int, scope: str) -> int:
    """Stable signed 64-bit advisory lock key for (scope, owner)"""
    scope_hash = zlib.crc32(scope.encode("utf-8"))
    key = (scope_hash << 32) | (owner_id & 0xFFFFFFFF)
    if key >= 2**63:
        key -= 2**64
    return key


def acquire_owner_lock(db: Session, owner_id: int, scope: str) -> bool:
    """
    Take a transaction-scoped advisory lock for one owner's materialization run.
    Released automatically on commit/rollback. Only PostgreSQL supports it;
    other dialects run unlocked and rely on the idempotent upserts.
    """
    if not ADVISORY_LOCKS_ENABLED:
        return False
    if db.get_bind().dialect.name != "postgresql":
        return False

    with translate_datastore_errors():
        db.execute(text("SELECT pg_advisory_xact_lock(:key)"), {"key": owner_lock_key(owner_id, scope)})
    logger.debug(f"🔒 Advisory lock acquired: {scope} owner={owner_id}")
    return True


@contextmanager
def translate_datastore_errors():
    """Re-raise connectivity failures as DatastoreUnavailable"""
    try:
        yield
    except OperationalError as e:
        logger.error(f"❌ Datastore unavailable: {e}")
        raise DatastoreUnavailable(str(e.orig) if e.orig else str(e)) from e
