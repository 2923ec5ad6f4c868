import logging
from datetime import datetime, timedelta, timezone
from typing import Optional
from jose import jwt, JWTError
from app.core import config

logger = logging.getLogger(__name__)


def create_access_token(data: dict, expires_delta: timedelta = None, secret_key: Optional[str] = None):
    """Issue a token shaped like the ones Supabase hands to the frontend (used by scripts and tests)."""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=60))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, secret_key or config.SECRET_KEY, algorithm=config.ALGORITHM)


def decode_access_token(token: str, secret_key: Optional[str] = None) -> Optional[str]:
    """
    Validate a bearer token and return the user id in its `sub` claim.

    Supabase tokens carry an `aud` claim ("authenticated") which is not
    checked here; signature and expiry are.

    Returns:
        User id, or None when the token is missing, expired or forged
    """
    key = secret_key or config.SECRET_KEY
    if not token or not key:
        return None
    try:
        payload = jwt.decode(
            token,
            key,
            algorithms=[config.ALGORITHM],
            options={"verify_aud": False},
        )
    except JWTError as e:
        logger.info(f"Rejected access token: {e}")
        return None
    return payload.get("sub")
