"""
Authentication providers.

The conversation flow asks an ``AuthProvider`` for the current user before a
session starts. ``None`` means nobody is signed in; a user whose profile has
not been set up comes back with ``profile=None``.
"""
import logging
from abc import ABC, abstractmethod
from typing import Optional

import jwt
from tortoise.exceptions import BaseORMException

from ..core.security import decode_access_token
from ..models.user import User
from ..schemas.conversation import CurrentUser, UserProfile

logger = logging.getLogger(__name__)


class ProfileLoadError(Exception):
    """The signed-in user's profile could not be loaded."""


class AuthProvider(ABC):
    @abstractmethod
    async def get_current_user(self) -> Optional[CurrentUser]:
        """
        Return the signed-in user, or None when nobody is signed in.

        Raises:
        - ProfileLoadError: the user is signed in but the profile lookup failed
        """
        pass


class StaticAuthProvider(AuthProvider):
    """Fixed user, for local runs and tests."""

    def __init__(self, user: Optional[CurrentUser]):
        self._user = user

    async def get_current_user(self) -> Optional[CurrentUser]:
        return self._user


def user_to_current(user: User) -> CurrentUser:
    profile = None
    if user.target_language and user.cefr_level:
        profile = UserProfile(
            target_language=user.target_language,
            native_language=user.native_language or "english",
            cefr_level=user.cefr_level,
        )
    return CurrentUser(id=str(user.id), email=user.email, profile=profile)


class TokenAuthProvider(AuthProvider):
    """Resolves a JWT access token to a database user."""

    def __init__(self, token: Optional[str]):
        self._token = token

    def set_token(self, token: Optional[str]) -> None:
        self._token = token

    async def get_current_user(self) -> Optional[CurrentUser]:
        if not self._token:
            return None

        try:
            payload = decode_access_token(self._token)
        except jwt.InvalidTokenError as e:
            logger.warning(f"[Auth] Rejected access token: {e}")
            return None

        user_id = payload.get("sub")
        if not user_id:
            return None

        try:
            user = await User.get_or_none(id=user_id)
        except (BaseORMException, ValueError) as e:
            logger.error(f"[Auth] Failed to load user {user_id}: {e}")
            raise ProfileLoadError(f"Failed to load user profile: {e}") from e

        if user is None:
            logger.warning(f"[Auth] Token subject {user_id} has no user record")
            return None
        return user_to_current(user)
