"""Database session management"""
from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import sessionmaker
from paygate.models.base import Base
from paygate.core.config import settings


def _engine_options(database_url: str, timeout_seconds: int) -> dict:
    """Bound every connection attempt and statement by a short timeout.

    A slow or unreachable store must not stall webhook acknowledgement past
    Paystack's own delivery timeout.
    """
    backend = make_url(database_url).get_backend_name()
    if backend == "sqlite":
        return {"connect_args": {"check_same_thread": False, "timeout": timeout_seconds}}

    options = {
        "pool_pre_ping": True,
        "pool_recycle": 3600,
        "pool_timeout": timeout_seconds,
    }
    if backend == "postgresql":
        options["connect_args"] = {
            "connect_timeout": timeout_seconds,
            "options": f"-c statement_timeout={timeout_seconds * 1000}",
        }
    return options


# Create engine
engine = create_engine(
    settings.DATABASE_URL,
    **_engine_options(settings.DATABASE_URL, settings.DB_TIMEOUT_SECONDS)
)

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    """Dependency for FastAPI endpoints"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """Initialize database (create all tables)"""
    Base.metadata.create_all(bind=engine)
