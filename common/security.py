"""
FarmLink - Security Utilities
==============================
JWT bearer tokens. Token issuance lives with the account service; this API
only needs to read them, plus an encoder for local tooling and tests.
"""

import logging
from datetime import timedelta
from typing import Optional

from fastapi import Request
from jose import jwt, JWTError

from config.settings import SECRET_KEY, ALGORITHM, ACCESS_TOKEN_EXPIRE_MINUTES, TRUSTED_PROXY_COUNT
from common.helpers import now_utc

logger = logging.getLogger("farmlink.security")


def create_token(data: dict) -> str:
    """Create JWT token. Expected claims: sub (user id as string), role."""
    to_encode = data.copy()
    to_encode["exp"] = now_utc() + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def decode_token(token: str) -> Optional[dict]:
    """Decode a JWT token. Returns payload or None."""
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError as e:
        logger.debug(f"Rejected token: {e}")
        return None


def get_bearer_token(request: Request) -> Optional[str]:
    """Extract the token from an `Authorization: Bearer <token>` header."""
    header = request.headers.get("authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def get_real_ip(request: Request, trusted_proxies: Optional[int] = None) -> str:
    """
    Client IP used as the rate-limit key.
    X-Forwarded-For is only read when TRUSTED_PROXY_COUNT proxies sit in front of
    the app; the hop they appended is taken, never a client-supplied entry.
    """
    if trusted_proxies is None:
        trusted_proxies = TRUSTED_PROXY_COUNT
    direct = request.client.host if request.client else "unknown"
    if trusted_proxies <= 0:
        return direct

    hops = [h.strip() for h in request.headers.get("X-Forwarded-For", "").split(",") if h.strip()]
    if len(hops) < trusted_proxies:
        return direct
    return hops[-trusted_proxies]
