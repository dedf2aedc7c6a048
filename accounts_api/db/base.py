from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from accounts_api.core.config import settings


def normalize_database_url(url: str) -> str:
    """Use the psycopg3 driver for plain postgresql:// URLs. SQLite URLs pass through."""
    if url.startswith("postgresql://") and "+psycopg" not in url:
        return url.replace("postgresql://", "postgresql+psycopg://", 1)
    return url


database_url = normalize_database_url(settings.database_url)

# Request handlers run in a threadpool, so SQLite connections cross threads.
connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}

engine = create_engine(database_url, connect_args=connect_args, pool_pre_ping=True)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()
