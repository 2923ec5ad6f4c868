from sqlalchemy import Column, Integer, String, Float, DateTime, ForeignKey
from app.db.base import Base, utcnow


class Payment(Base):
    """Audit row for a purchase or a provider-side charge."""
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)

    quantity = Column(Integer, nullable=False)  # credits granted
    price = Column(Float, nullable=True)
    currency = Column(String(3), default="USD", nullable=False)
    payment_status = Column(String, default="", nullable=False)

    payer_id = Column(String, nullable=True)
    payer_name = Column(String, nullable=True)
    payer_address = Column(String, nullable=True)
    payer_email = Column(String, nullable=True)

    # Polar checkout/order id; used to make webhook deliveries idempotent
    external_reference = Column(String, nullable=True, unique=True, index=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
