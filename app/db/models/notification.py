from sqlalchemy import Column, Integer, String, Text, DateTime, Index
from app.db.base import Base, utcnow

OUTBOX_PENDING = "pending"
OUTBOX_SENDING = "sending"
OUTBOX_SENT = "sent"
OUTBOX_FAILED = "failed"


class NotificationOutbox(Base):
    """
    Outbound notification waiting to be delivered.

    Rows are written in the same transaction as the purchase they announce
    and delivered afterwards by the outbox dispatcher.
    """
    __tablename__ = "notification_outbox"

    id = Column(Integer, primary_key=True, index=True)
    kind = Column(String, nullable=False)  # e.g. "subscription_confirmation"
    recipient = Column(String, nullable=False)
    payload = Column(Text, nullable=False)  # JSON document

    status = Column(String, default=OUTBOX_PENDING, nullable=False)  # pending, sending, sent, failed
    attempts = Column(Integer, default=0, nullable=False)
    last_error = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    next_attempt_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    sent_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("idx_outbox_status_next_attempt", "status", "next_attempt_at"),
    )
