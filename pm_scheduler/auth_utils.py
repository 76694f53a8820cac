from typing import Optional
from jose import jwt, JWTError

from pm_scheduler.config import settings


# JWT (tokens are issued by the account service; this side only verifies them)
def decode_access_token(token: str) -> Optional[dict]:
    """Verify token and return full payload, None if invalid or expired"""
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None
