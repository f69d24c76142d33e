from datetime import datetime, timezone

from sqlalchemy.orm import declarative_base

Base = declarative_base()


def utcnow() -> datetime:
    # Naive UTC, SQLite drops tzinfo on round trip
    return datetime.now(timezone.utc).replace(tzinfo=None)
