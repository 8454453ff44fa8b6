"""
Integration tests for services.auth: JWT -> user row -> CurrentUser.
"""
from unittest.mock import AsyncMock, patch

import pytest
from tortoise.exceptions import OperationalError

from voicetutor.core.security import create_access_token
from voicetutor.models import User
from voicetutor.services.auth import ProfileLoadError, StaticAuthProvider, TokenAuthProvider


class TestTokenAuthProvider:
    @pytest.mark.asyncio
    async def test_resolves_user_with_profile(self, db):
        user = await User.create(email="ana@example.com", target_language="french",
                                 native_language="spanish", cefr_level="B2")

        current = await TokenAuthProvider(create_access_token(str(user.id))).get_current_user()

        assert current.id == str(user.id)
        assert current.email == "ana@example.com"
        assert current.profile.target_language == "french"
        assert current.profile.native_language == "spanish"
        assert current.profile.cefr_level == "B2"

    @pytest.mark.asyncio
    async def test_user_without_profile(self, db):
        user = await User.create(email="new@example.com")

        current = await TokenAuthProvider(create_access_token(str(user.id))).get_current_user()

        assert current is not None
        assert current.profile is None

    @pytest.mark.asyncio
    async def test_no_token(self, db):
        assert await TokenAuthProvider(None).get_current_user() is None

    @pytest.mark.asyncio
    async def test_invalid_token(self, db):
        assert await TokenAuthProvider("garbage").get_current_user() is None

    @pytest.mark.asyncio
    async def test_expired_token(self, db):
        user = await User.create(email="old@example.com", target_language="german", cefr_level="A1")
        token = create_access_token(str(user.id), expires_minutes=-5)
        assert await TokenAuthProvider(token).get_current_user() is None

    @pytest.mark.asyncio
    async def test_unknown_user(self, db):
        token = create_access_token("00000000-0000-0000-0000-000000000000")
        assert await TokenAuthProvider(token).get_current_user() is None

    @pytest.mark.asyncio
    async def test_database_failure_raises_profile_load_error(self, db):
        token = create_access_token("00000000-0000-0000-0000-000000000000")

        with patch.object(User, "get_or_none", AsyncMock(side_effect=OperationalError("database is locked"))):
            with pytest.raises(ProfileLoadError, match="database is locked"):
                await TokenAuthProvider(token).get_current_user()


class TestStaticAuthProvider:
    @pytest.mark.asyncio
    async def test_returns_configured_user(self, learner):
        assert await StaticAuthProvider(learner).get_current_user() is learner
