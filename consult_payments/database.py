from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from consult_payments.config import get_database_url

DATABASE_URL = get_database_url()
if not DATABASE_URL:
    raise RuntimeError("DATABASE_URL is not set. Check your .env file.")

# Webhook handling runs in the threadpool, so sqlite connections cross threads
_is_sqlite = DATABASE_URL.startswith("sqlite")
engine = create_engine(
    DATABASE_URL,
    connect_args={"check_same_thread": False} if _is_sqlite else {},
    pool_pre_ping=not _is_sqlite,
)

SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
Base = declarative_base()


def init_db(bind=None) -> None:
    """Create the ledger tables (payments, users) if they are missing."""
    from consult_payments import models  # noqa: F401  registers the tables on Base

    Base.metadata.create_all(bind=bind or engine)
