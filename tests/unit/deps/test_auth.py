"""Unit tests for auth dependencies - JWT validation and account loading."""

import uuid
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials
from jose import JWTError

from app.api.deps.auth import decode_account_id, get_current_account, get_current_account_id

from tests.helpers.auth import make_token
from tests.helpers.mock_factories import make_mock_account


def bearer(token: str) -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme="Bearer", credentials=token)


# ---------------------------------------------------------------------------
# decode_account_id
# ---------------------------------------------------------------------------


class TestDecodeAccountId:
    """Tests for token verification."""

    def test_returns_subject_as_uuid(self):
        account_id = uuid.uuid4()
        assert decode_account_id(make_token(account_id)) == account_id

    def test_rejects_wrong_secret(self):
        with pytest.raises(JWTError):
            decode_account_id(make_token(uuid.uuid4(), secret="another-secret"))

    def test_rejects_expired_token(self):
        with pytest.raises(JWTError):
            decode_account_id(make_token(uuid.uuid4(), expires_in=timedelta(minutes=-5)))

    def test_rejects_token_without_subject(self):
        with pytest.raises(JWTError, match="no subject"):
            decode_account_id(make_token(None))

    def test_rejects_non_uuid_subject(self):
        with pytest.raises(ValueError):
            decode_account_id(make_token("not-a-uuid"))

    @patch("app.api.deps.auth.settings")
    def test_rejects_when_secret_not_configured(self, mock_settings):
        mock_settings.jwt_secret = ""
        with pytest.raises(JWTError, match="not configured"):
            decode_account_id("anything")


# ---------------------------------------------------------------------------
# get_current_account_id / get_current_account
# ---------------------------------------------------------------------------


class TestGetCurrentAccountId:
    """Tests for the database-free dependency."""

    async def test_missing_credentials_is_401(self):
        with pytest.raises(HTTPException) as exc_info:
            await get_current_account_id(None)
        assert exc_info.value.status_code == 401

    async def test_invalid_token_is_401(self):
        with pytest.raises(HTTPException) as exc_info:
            await get_current_account_id(bearer("garbage"))
        assert exc_info.value.status_code == 401

    async def test_valid_token_returns_id(self):
        account_id = uuid.uuid4()
        assert await get_current_account_id(bearer(make_token(account_id))) == account_id


class TestGetCurrentAccount:
    """Tests for account loading."""

    @patch("app.api.deps.auth.account_ops")
    async def test_returns_account(self, mock_ops):
        account = make_mock_account()
        mock_ops.get = AsyncMock(return_value=account)

        result = await get_current_account(account.id, MagicMock())

        assert result is account

    @patch("app.api.deps.auth.account_ops")
    async def test_unknown_account_is_401(self, mock_ops):
        mock_ops.get = AsyncMock(return_value=None)

        with pytest.raises(HTTPException) as exc_info:
            await get_current_account(uuid.uuid4(), MagicMock())
        assert exc_info.value.status_code == 401
