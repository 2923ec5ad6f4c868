from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Index
from app.db.base import Base, utcnow

STATUS_ACTIVE = "active"
STATUS_EXPIRED = "expired"

PROVIDER_POLAR = "polar"
PROVIDER_PAYPAL = "paypal"


class UserCredit(Base):
    """
    One purchased or granted credit balance (a subscription period or a one-time pack).

    Status only ever moves active -> expired. A cancelled subscription keeps
    status "active" (with subscription_status_canceled set) until it expires.
    """
    __tablename__ = "user_credits"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)

    credits = Column(Integer, default=0, nullable=False)
    status = Column(String, default=STATUS_ACTIVE, nullable=False)  # active | expired
    plan_type = Column(String, nullable=False)  # monthly | yearly | one_time
    membership = Column(String, nullable=True)  # saver | pro | super | add_on

    subscription_id = Column(String, nullable=True, index=True)
    payment_provider = Column(String, nullable=True)  # polar | paypal; NULL means legacy PayPal
    subscription_status_canceled = Column(Boolean, default=False, nullable=False)

    polar_customer_id = Column(String, nullable=True)
    polar_checkout_id = Column(String, nullable=True, index=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
    expires_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("idx_user_credits_user_status", "user_id", "status"),
    )

    def __repr__(self):
        return (
            f"<UserCredit id={self.id} user_id={self.user_id} credits={self.credits} "
            f"status={self.status} plan_type={self.plan_type}>"
        )
