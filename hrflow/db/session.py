"""
Database session management
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from hrflow.core.config import settings
from hrflow.db.base import Base

is_sqlite = settings.DATABASE_URL.startswith("sqlite")

# Sessions are opened in the threadpool and used from async endpoints
engine = create_engine(
    settings.DATABASE_URL,
    pool_pre_ping=True,
    connect_args={"check_same_thread": False} if is_sqlite else {},
    echo=False
)

# SQLite creates tables on startup; other stores are migrated with Alembic
if is_sqlite:
    import hrflow.models  # noqa: F401  (registers every table on Base.metadata)

    Base.metadata.create_all(bind=engine)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
