# tests/v1/test_dependencies.py
"""Tests for API dependencies module."""

import pytest
from fastapi import HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials

from tourhub.api.v1.dependencies import _extract_token, get_current_user
from tourhub.core.security import create_access_token


def _bearer(token: str) -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme="Bearer", credentials=token)


class TestExtractToken:
    """Test the _extract_token helper function."""

    def test_prefers_bearer_header(self):
        assert _extract_token(_bearer("header"), "cookie") == "header"

    def test_falls_back_to_cookie(self):
        assert _extract_token(None, "cookie") == "cookie"

    def test_missing(self):
        assert _extract_token(None, "") is None


class TestGetCurrentUser:
    """Test resolving the authenticated user."""

    def test_valid_token(self, db_session, test_user):
        user = get_current_user(db_session, _bearer(create_access_token("u1")), None)

        assert user.id == "u1"

    def test_cookie_token(self, db_session, test_user):
        user = get_current_user(db_session, None, create_access_token("u1"))

        assert user.username == "alice"

    def test_missing_token(self, db_session):
        with pytest.raises(HTTPException) as exc_info:
            get_current_user(db_session, None, None)

        assert exc_info.value.status_code == status.HTTP_401_UNAUTHORIZED
        assert exc_info.value.detail == "Unauthorized - No Token Provided"

    def test_invalid_token(self, db_session, test_user):
        with pytest.raises(HTTPException) as exc_info:
            get_current_user(db_session, _bearer("not-a-jwt"), None)

        assert exc_info.value.status_code == status.HTTP_401_UNAUTHORIZED
        assert exc_info.value.detail == "Could not validate credentials"

    def test_unknown_user(self, db_session):
        with pytest.raises(HTTPException) as exc_info:
            get_current_user(db_session, _bearer(create_access_token("ghost")), None)

        assert exc_info.value.detail == "User not found"
