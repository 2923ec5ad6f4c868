from datetime import datetime, timezone
from sqlalchemy.orm import declarative_base

Base = declarative_base()

# Note: Models are imported in app.db.models to avoid circular imports
# All models must import Base from this module


def utcnow() -> datetime:
    """Current time as naive UTC; every timestamp column stores naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
