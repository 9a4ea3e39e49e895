"""
Declarative base shared by all models
"""
import uuid
from datetime import datetime, timezone

from sqlalchemy.orm import declarative_base

Base = declarative_base()


def utcnow() -> datetime:
    """Naive UTC timestamp, the convention for every DateTime column."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    """Opaque string identifier for new rows."""
    return str(uuid.uuid4())
