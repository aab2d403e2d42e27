import logging

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from phishdrill.config import settings

logger = logging.getLogger(__name__)


def make_engine(url: str):
    """SQLite gets a thread-agnostic connection; server databases get a pool"""
    if url.startswith("sqlite"):
        return create_engine(url, connect_args={"check_same_thread": False})
    return create_engine(url, pool_pre_ping=True, pool_size=10, max_overflow=20)


# Engine is lazy: nothing connects until the SQL ledger backend is used
engine = make_engine(settings.DATABASE_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def init_db(bind=None):
    """Initialize database tables"""
    # Import models here so they register with 'Base'
    import phishdrill.models  # noqa: F401

    logger.info("🔄 Creating ledger tables...")
    Base.metadata.create_all(bind=bind or engine)
    logger.info("✅ Tables created successfully!")
