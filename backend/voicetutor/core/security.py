# voicetutor/core/security.py
"""
JWT access token helpers.
Tokens are issued by the sign-in service; the tutor only needs to verify them
(and to mint them for local development and tests).
"""
import datetime as dt

import jwt  # PyJWT

from ..config import settings

JWT_ALG = "HS256"  # JWT signing algorithm (HMAC SHA-256)


def create_access_token(user_id: str, expires_minutes: int | None = None) -> str:
    """
    Create a signed access token for ``user_id``.

    Token payload includes:
        - sub: Subject (user ID)
        - iat: Issued at timestamp
        - exp: Expiration timestamp
    """
    minutes = expires_minutes if expires_minutes is not None else settings.access_token_expire_minutes
    now = dt.datetime.now(dt.timezone.utc)
    payload = {
        "sub": user_id,
        "iat": now,
        "exp": now + dt.timedelta(minutes=minutes),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=JWT_ALG)


def decode_access_token(token: str) -> dict:
    """
    Decode and validate an access token.

    Raises:
        jwt.ExpiredSignatureError: If token has expired
        jwt.InvalidTokenError: If token is invalid or malformed
    """
    return jwt.decode(token, settings.jwt_secret, algorithms=[JWT_ALG])
