from typing import Optional
from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from app.core.security import decode_access_token
from app.db.session import SessionLocal

# auto_error=False: billing actions report "User not authenticated" in their
# own result body instead of a bare 401.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)


def get_db():
    """Database session dependency."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_current_user_id(token: Optional[str] = Depends(oauth2_scheme)) -> Optional[str]:
    """Get current user id from the Supabase JWT, or None when unauthenticated."""
    if not token:
        return None
    return decode_access_token(token)
