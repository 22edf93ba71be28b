from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from healthtrack.core.config import settings


def build_engine(url: str):
    if url.startswith("sqlite"):
        # FastAPI serves sync endpoints from a threadpool
        return create_engine(url, connect_args={"check_same_thread": False}, echo=False)
    # PostgreSQL configuration with connection pooling
    return create_engine(
        url,
        pool_size=10,
        max_overflow=20,
        pool_recycle=300,      # Recycle connections every 5 minutes
        pool_pre_ping=True,    # Validate connections before use
        pool_timeout=30,
        echo=False             # Set to True for SQL logging
    )


engine = build_engine(settings.SQLALCHEMY_DATABASE_URI)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)
