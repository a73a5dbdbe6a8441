"""
JWT helpers

End-user tokens are issued by the auth service; this service only needs the
shared secret to verify them. create_access_token exists for service-to-service
calls and local tooling.
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
import logging

from jose import jwt, JWTError

from .config import settings

logger = logging.getLogger(__name__)


def create_access_token(user_id: int, username: str,
                        expires_delta: Optional[timedelta] = None) -> str:
    """Create a signed access token for user_id"""
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    payload = {
        "sub": str(user_id),
        "username": username,
        "type": "access",
        "exp": expire,
    }
    return jwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> Optional[Dict[str, Any]]:
    """Decode and verify a token, returning None when it is invalid or expired"""
    try:
        return jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError as e:
        logger.debug(f"Token rejected: {e}")
        return None
