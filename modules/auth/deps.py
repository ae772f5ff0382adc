"""
Auth Module - Dependencies
===========================
FastAPI dependencies for user authentication and authorization.
These are injected into route handlers via Depends().

Tokens are issued by the account service; this API verifies the bearer
token and resolves it to an active User.
"""

from fastapi import Request, Depends
from sqlalchemy.orm import Session

from config.database import get_db
from common.exceptions import AuthenticationError, AuthorizationError
from common.helpers import safe_int
from common.security import decode_token, get_bearer_token
from modules.user.models import User


def get_current_user(request: Request, db: Session = Depends(get_db)) -> User:
    """
    Identify the current user from the Authorization header.
    401 when no token was sent, 403 when it is invalid or the user is gone.
    """
    token = get_bearer_token(request)
    if not token:
        raise AuthenticationError("Access token is required")

    payload = decode_token(token)
    user_id = safe_int(payload.get("sub")) if payload else None
    if not user_id:
        raise AuthorizationError("Invalid or expired token")

    user = db.query(User).filter(User.id == user_id, User.is_active == True).first()  # noqa: E712
    if not user:
        raise AuthorizationError("Invalid or expired token")
    return user


def require_role(*roles: str):
    """
    Factory: returns a dependency that only lets the given roles through.

    Usage:
      me=Depends(require_role("buyer"))
      me=Depends(require_role("producer", "admin"))
    """

    def dependency(user: User = Depends(get_current_user)) -> User:
        if user.role not in roles:
            raise AuthorizationError(f"Access denied. Required role: {' or '.join(roles)}")
        return user

    return dependency


require_buyer = require_role("buyer")
require_producer = require_role("producer")
require_admin = require_role("admin")
