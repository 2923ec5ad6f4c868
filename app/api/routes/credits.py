"""
Credits summary endpoint.

Called by the billing page on load and again whenever the frontend's realtime
channel reports a change to the user's credit rows.
"""
import logging
from typing import Optional
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.core.auth_dependency import get_current_user_id, get_db
from app.schemas.credits import CreditsResponse
from app.services.credits_service import get_user_credits

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/credits", tags=["Credits"])


@router.get("", response_model=CreditsResponse, status_code=status.HTTP_200_OK)
def read_user_credits(
    user_id: Optional[str] = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """
    Get the credits summary for the authenticated user.

    Returns {"success": true, "data": {...}} or {"success": false, "error": "..."};
    failures are reported in the body, never as an HTTP error.
    """
    return get_user_credits(db, user_id)
