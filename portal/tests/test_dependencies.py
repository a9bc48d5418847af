"""Tests for dependency injection."""

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from portal import state
from portal.errors import AuthError, ForbiddenError, ServiceUnavailableError
from portal.models.auth import Identity


class TestGetters:
    """Test the shared-resource getters."""

    def test_get_store_returns_store_when_initialized(self):
        from portal.dependencies import get_store

        mock_store = MagicMock()
        with patch.object(state, "store", mock_store):
            assert get_store() is mock_store

    def test_get_store_raises_when_not_initialized(self):
        from portal.dependencies import get_store

        with patch.object(state, "store", None):
            with pytest.raises(ServiceUnavailableError) as exc_info:
                get_store()
            assert "Document store not initialized" in str(exc_info.value.detail)

    def test_get_identity_provider(self):
        from portal.dependencies import get_identity_provider

        provider = MagicMock()
        with patch.object(state, "identity_provider", provider):
            assert get_identity_provider() is provider
        with patch.object(state, "identity_provider", None):
            with pytest.raises(ServiceUnavailableError):
                get_identity_provider()


class TestSessionToken:
    @pytest.mark.parametrize(
        "header,expected",
        [
            (None, None),
            ("", None),
            ("Bearer abc", "abc"),
            ("bearer  abc ", "abc"),
            ("Basic abc", None),
            ("Bearer ", None),
        ],
    )
    def test_parsing(self, header, expected):
        from portal.dependencies import get_session_token

        assert get_session_token(header) == expected


class TestRequireAdmin:
    """Test the admin guard."""

    @pytest.mark.asyncio
    async def test_no_identity(self):
        from portal.dependencies import require_admin

        with pytest.raises(AuthError):
            await require_admin(None, MagicMock())

    @pytest.mark.asyncio
    async def test_anonymous_is_forbidden(self):
        from portal.dependencies import require_admin

        provider = MagicMock()
        provider.is_admin.return_value = False
        with pytest.raises(ForbiddenError):
            await require_admin(Identity(uid="u", is_anonymous=True), provider)

    @pytest.mark.asyncio
    async def test_admin_passes(self):
        from portal.dependencies import require_admin

        provider = MagicMock()
        provider.is_admin.return_value = True
        identity = Identity(uid="u", is_anonymous=False, email="x@y.com")
        assert await require_admin(identity, provider) is identity

    @pytest.mark.asyncio
    async def test_get_identity_without_token(self):
        from portal.dependencies import get_identity

        provider = MagicMock()
        provider.current_identity = AsyncMock()
        assert await get_identity(None, provider) is None
        provider.current_identity.assert_not_called()
