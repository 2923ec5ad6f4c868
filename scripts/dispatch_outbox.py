"""
Deliver pending notification emails (one outbox pass).
Run from cron: python -m scripts.dispatch_outbox [--limit 100]
"""
import argparse
import logging
import sys

from app.core import config
from app.core.logging_config import setup_logging
from app.db.session import SessionLocal
from app.services.notification_outbox import dispatch_pending_notifications

logger = logging.getLogger(__name__)


def main(limit: int) -> int:
    db = SessionLocal()
    try:
        stats = dispatch_pending_notifications(db, limit=limit)
    except Exception:
        db.rollback()
        logger.exception("Outbox dispatch failed")
        return 1
    finally:
        db.close()

    print(f"sent={stats['sent']} retried={stats['retried']} failed={stats['failed']}")
    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Deliver pending notification emails")
    parser.add_argument("--limit", type=int, default=100, help="Maximum messages to handle")
    args = parser.parse_args()

    setup_logging(log_level=config.LOG_LEVEL)
    sys.exit(main(args.limit))
