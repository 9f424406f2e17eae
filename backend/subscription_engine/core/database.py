from datetime import datetime, timezone

from sqlalchemy import DateTime, create_engine
from sqlalchemy.engine.url import make_url
from sqlalchemy.ext.declarative import declarative_base
from sqlalchemy.orm import sessionmaker
from sqlalchemy.types import TypeDecorator

from subscription_engine.core.settings import settings

SQLALCHEMY_DATABASE_URL = settings.database_url


def _connect_args_for(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"check_same_thread": False}
    try:
        parsed = make_url(url)
    except Exception:
        return {}
    if (parsed.drivername or "").startswith("postgresql") and settings.is_production:
        return {"sslmode": "require"}
    return {}


engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args=_connect_args_for(SQLALCHEMY_DATABASE_URL), pool_pre_ping=True)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


class AwareDateTime(TypeDecorator):
    """Timestamp column that always stores UTC and always loads tz-aware values.

    SQLite drops tzinfo on the way in, so values read back are naive; they are
    re-tagged as UTC here so comparisons against ``utcnow()`` never mix naive
    and aware datetimes.
    """

    impl = DateTime
    cache_ok = True

    def __init__(self):
        super().__init__(timezone=True)

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is not None and isinstance(value, datetime) and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
