"""
Notification outbox.

Purchase flows stage confirmation emails here inside their own transaction;
delivery happens afterwards, off the request path, with bounded retries.
A failed email never affects the purchase it announces.
"""
import json
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from app.core import config
from app.db.base import utcnow
from app.db.models.notification import (
    NotificationOutbox,
    OUTBOX_FAILED,
    OUTBOX_PENDING,
    OUTBOX_SENDING,
    OUTBOX_SENT,
)
from app.db.models.user import User

logger = logging.getLogger(__name__)

KIND_PURCHASE_CONFIRMATION = "purchase_confirmation"

MAX_RETRY_DELAY_MINUTES = 60

# How long a claimed message stays reserved for the pass that claimed it
SENDING_LEASE = timedelta(minutes=10)


def enqueue_notification(db: Session, kind: str, recipient: str, payload: Dict[str, Any]) -> NotificationOutbox:
    """Stage a notification in the caller's transaction (no commit)."""
    message = NotificationOutbox(
        kind=kind,
        recipient=recipient,
        payload=json.dumps(payload),
        status=OUTBOX_PENDING,
        attempts=0,
        next_attempt_at=utcnow(),
    )
    db.add(message)
    return message


def enqueue_purchase_confirmation(
    db: Session,
    user: User,
    membership: Optional[str],
    credits: int,
    is_subscription: bool = True,
) -> Optional[NotificationOutbox]:
    """Stage the tier-specific confirmation mail for a purchase; skipped when the user has no email."""
    if not user.email:
        logger.warning(f"No email on file, skipping purchase confirmation: user_id={user.id}")
        return None
    return enqueue_notification(
        db,
        KIND_PURCHASE_CONFIRMATION,
        user.email,
        {
            "creator_name": user.full_name or "Creator",
            "credits": credits,
            "membership": membership,
            "is_subscription": is_subscription,
        },
    )


def retry_delay(attempts: int) -> timedelta:
    """Exponential back-off: 2, 4, 8 ... minutes, capped at an hour."""
    return timedelta(minutes=min(2 ** attempts, MAX_RETRY_DELAY_MINUTES))


def claim_notification(db: Session, message_id: int, now: datetime) -> bool:
    """
    Take a due message for this pass.

    The row moves to `sending` with a lease only if it is still due, so two
    overlapping passes can never both deliver it. A pass that dies mid-send
    leaves the row to be reclaimed once the lease runs out. Commits.
    """
    claimed = (
        db.query(NotificationOutbox)
        .filter(
            NotificationOutbox.id == message_id,
            NotificationOutbox.status.in_((OUTBOX_PENDING, OUTBOX_SENDING)),
            NotificationOutbox.next_attempt_at <= now,
        )
        .update(
            {"status": OUTBOX_SENDING, "next_attempt_at": now + SENDING_LEASE},
            synchronize_session=False,
        )
    )
    db.commit()
    return claimed == 1


def dispatch_pending_notifications(
    db: Session,
    sender=None,
    limit: int = 50,
    max_attempts: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Dict[str, int]:
    """
    Deliver due notifications.

    Each message is claimed and committed individually so one bad recipient
    cannot hold back the rest of the batch, and a message another pass has
    already claimed is skipped.

    Args:
        db: Database session
        sender: Object with send(kind, recipient, payload); defaults to Resend
        limit: Maximum messages handled in this pass
        max_attempts: Attempts before a message is marked failed
        now: Clock override

    Returns:
        Counts of messages sent, retried and failed in this pass
    """
    if sender is None:
        from app.services.email_service import ResendEmailSender
        sender = ResendEmailSender()

    max_attempts = max_attempts or config.OUTBOX_MAX_ATTEMPTS
    now = now or utcnow()
    stats = {"sent": 0, "retried": 0, "failed": 0}

    due_ids = [
        row.id
        for row in db.query(NotificationOutbox.id)
        .filter(
            NotificationOutbox.status.in_((OUTBOX_PENDING, OUTBOX_SENDING)),
            NotificationOutbox.next_attempt_at <= now,
        )
        .order_by(NotificationOutbox.id.asc())
        .limit(limit)
        .all()
    ]

    for message_id in due_ids:
        if not claim_notification(db, message_id, now):
            logger.debug(f"Notification {message_id} claimed by another pass, skipping")
            continue

        message = db.query(NotificationOutbox).filter(NotificationOutbox.id == message_id).one()
        try:
            sender.send(message.kind, message.recipient, json.loads(message.payload))
        except Exception as e:
            message.attempts += 1
            message.last_error = str(e)[:1000]
            if message.attempts >= max_attempts:
                message.status = OUTBOX_FAILED
                stats["failed"] += 1
                logger.error(
                    f"Notification abandoned after {message.attempts} attempts: "
                    f"id={message.id}, kind={message.kind}, error={e}"
                )
            else:
                message.status = OUTBOX_PENDING
                message.next_attempt_at = now + retry_delay(message.attempts)
                stats["retried"] += 1
                logger.warning(
                    f"Notification delivery failed, will retry: id={message.id}, "
                    f"attempts={message.attempts}, error={e}"
                )
        else:
            message.status = OUTBOX_SENT
            message.sent_at = now
            message.last_error = None
            stats["sent"] += 1
        db.commit()

    if due_ids:
        logger.info(f"Outbox pass complete: {stats}")
    return stats


def run_outbox_dispatch() -> None:
    """One dispatch pass on a fresh session; scheduled as a background task after purchases."""
    from app.db.session import SessionLocal

    db = SessionLocal()
    try:
        dispatch_pending_notifications(db)
    except SQLAlchemyError as e:
        db.rollback()
        # Messages stay pending; the next pass picks them up
        logger.error(f"Outbox dispatch failed: {e}")
    finally:
        db.close()


def get_notification_dispatcher() -> Callable[[], None]:
    """FastAPI dependency returning the callable scheduled after a purchase commits."""
    return run_outbox_dispatch
