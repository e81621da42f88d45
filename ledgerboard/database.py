"""Database setup and session management."""
from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from ledgerboard.config import settings


class Base(DeclarativeBase):
    """SQLAlchemy declarative base."""

    pass


# SQLite needs check_same_thread=False: store calls run in the threadpool
connect_args = {} if "sqlite" not in settings.database_url else {"check_same_thread": False}
engine = create_engine(
    settings.database_url,
    echo=False,
    connect_args=connect_args,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def init_db():
    """Create all tables."""
    import ledgerboard.models  # noqa: F401  registers mappers on Base

    Base.metadata.create_all(bind=engine)
