"""SQLAlchemy database configuration."""

from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from app.config import get_settings

settings = get_settings()


def build_engine(url: str):
    """Create an engine; SQLite needs thread sharing for the API workers."""
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(
        url,
        echo=settings.DEBUG,
        pool_pre_ping=True,
        connect_args=connect_args,
    )


engine = build_engine(settings.DATABASE_URL)

# Session factory
SessionLocal = sessionmaker(
    bind=engine,
    class_=Session,
    expire_on_commit=False,
    autoflush=False,
)


def get_db() -> Generator[Session, None, None]:
    """Dependency to get a database session."""
    with SessionLocal() as session:
        yield session


def create_tables() -> None:
    """Create all tables that do not exist yet."""
    from app.models import Base

    Base.metadata.create_all(bind=engine)
