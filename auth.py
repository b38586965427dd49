"""
Bearer-token authentication.

Tokens are HS256 JWTs carrying ``id`` and ``email``. ``get_current_user``
resolves them against the user directory, provisioning the account on first
contact when the id is unknown but the email is present.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

import users
from config import settings
from database import get_db
from errors import Unauthorized
from models import User

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def issue_token(user: User, expires_days: Optional[int] = None) -> str:
    expires = datetime.now(timezone.utc) + timedelta(days=expires_days or settings.JWT_EXPIRES_DAYS)
    claims = {"id": user.id, "email": user.email, "exp": expires}
    return jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> Dict[str, Any]:
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except JWTError as e:
        raise Unauthorized(f"Invalid token: {e}")


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> User:
    if credentials is None or not credentials.credentials:
        raise Unauthorized("Missing bearer token", code="no_token")

    claims = decode_token(credentials.credentials)
    user_id = claims.get("id")
    user = db.get(User, user_id) if isinstance(user_id, int) else None
    if user is not None:
        return user

    email = claims.get("email")
    if not email:
        raise Unauthorized("Token carries no known identity")
    logger.info("Token for unknown user id %s; resolving by email", user_id)
    return users.ensure_user_by_email(db, email)
