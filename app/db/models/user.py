import uuid
from sqlalchemy import Column, String, Boolean, Float, DateTime
from sqlalchemy.sql import func
from app.db.base import Base


class User(Base):
    """Profile row for a Supabase auth user (same id as auth.users)."""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    full_name = Column(String, nullable=True)
    email = Column(String, unique=True, index=True)

    # One-time 25% credit bonus; cleared once consumed by a purchase
    offers = Column(Boolean, default=False, nullable=False)
    offer_plan_buy = Column(String, nullable=True)
    offer_price_buy = Column(Float, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
