"""
SQLAlchemy engine, session factory and declarative base
"""
import logging
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from lms_quiz.config import settings

logger = logging.getLogger(__name__)


def _engine_options(url: str) -> dict:
    """SQLite needs cross-thread access; in-memory SQLite needs a single shared connection"""
    if not url.startswith("sqlite"):
        return {"pool_pre_ping": True}
    
    options = {"connect_args": {"check_same_thread": False}}
    if ":memory:" in url or url in ("sqlite://", "sqlite+pysqlite://"):
        options["poolclass"] = StaticPool
    return options


engine = create_engine(settings.DATABASE_URL, **_engine_options(settings.DATABASE_URL))
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db():
    """FastAPI dependency yielding a database session"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """Create all tables registered on the declarative base"""
    # Import models so they register with Base.metadata
    from lms_quiz import models  # noqa: F401
    
    Base.metadata.create_all(bind=engine)
    logger.info(f"Database tables ensured: {sorted(Base.metadata.tables)}")
