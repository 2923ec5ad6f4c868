"""
Polar webhook endpoint.

Deliveries are authenticated with the Standard Webhooks signature before any
event is applied. Any failure while applying an event answers 500 so Polar
redelivers.
"""
import json
import logging
from typing import Callable
from fastapi import APIRouter, BackgroundTasks, Depends, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from app.core import config
from app.core.auth_dependency import get_db
from app.payments.webhook_signature import WebhookVerificationError, verify_webhook_signature
from app.services.notification_outbox import get_notification_dispatcher
from app.services.polar_webhook_service import process_polar_event

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/polar", tags=["Polar Webhook"])


@router.post("/webhooks", status_code=status.HTTP_202_ACCEPTED)
async def polar_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    dispatch_notifications: Callable[[], None] = Depends(get_notification_dispatcher),
):
    payload = await request.body()

    try:
        verify_webhook_signature(payload, request.headers, config.POLAR_WEBHOOK_SECRET)
    except WebhookVerificationError as e:
        logger.warning(f"Polar webhook rejected: {e}")
        return JSONResponse(status_code=status.HTTP_403_FORBIDDEN, content={"error": "Invalid webhook signature"})

    try:
        event = json.loads(payload)
    except ValueError:
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": "Invalid JSON payload"})
    if not isinstance(event, dict):
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": "Invalid JSON payload"})

    try:
        handled = process_polar_event(event, db)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Polar webhook {event.get('type')} failed: {e}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Failed to process webhook"},
        )
    except Exception as e:
        db.rollback()
        logger.error(
            f"Unexpected error in Polar webhook {event.get('type')}: {type(e).__name__}: {e}", exc_info=True
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Failed to process webhook"},
        )

    if handled:
        background_tasks.add_task(dispatch_notifications)
    return {"received": True}
