# Overview: Stateless JWT access tokens (PyJWT, HS256 by default).

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import jwt
from flask import current_app


class TokenError(Exception):
    """Token could not be accepted. status is the HTTP status to answer with."""

    def __init__(self, message: str, status: int = 401):
        super().__init__(message)
        self.message = message
        self.status = status


def _secret() -> str:
    secret = current_app.config.get("JWT_SECRET")
    if not secret:
        current_app.logger.error("JWT_SECRET is not configured")
        raise TokenError("Server configuration error", status=500)
    return secret


def issue_token(user, *, expires_in: timedelta | None = None) -> str:
    """Sign a token carrying sub (user id), email and role."""
    now = datetime.now(timezone.utc)
    lifetime = expires_in or timedelta(hours=current_app.config["JWT_EXPIRES_HOURS"])
    payload = {
        "sub": str(user.id),
        "email": user.email,
        "role": user.role,
        "iat": now,
        "exp": now + lifetime,
    }
    return jwt.encode(payload, _secret(), algorithm=current_app.config["JWT_ALGORITHM"])


def decode_token(token: str) -> dict:
    """
    Verify signature and expiry.

    Raises TokenError("Token expired") or TokenError("Invalid token").
    """
    secret = _secret()
    try:
        return jwt.decode(token, secret, algorithms=[current_app.config["JWT_ALGORITHM"]])
    except jwt.ExpiredSignatureError:
        raise TokenError("Token expired")
    except jwt.InvalidTokenError:
        raise TokenError("Invalid token")
