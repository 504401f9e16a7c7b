"""Unit tests for caller identity from JWT tokens."""
from datetime import timedelta

import pytest
from fastapi import HTTPException
from jose import jwt

from reservations.auth import RoleEnum, caller_from_token, create_access_token, decode_token
from reservations.config import get_settings
from reservations.dependencies import get_current_caller, get_optional_caller, require_admin

settings = get_settings()


class TestJWTTokens:
    """Test JWT token creation and decoding."""

    def test_create_access_token(self):
        """Test JWT token creation with valid data."""
        token = create_access_token({"sub": "5", "role": "admin"})

        decoded = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
        assert decoded["sub"] == "5"
        assert decoded["role"] == "admin"
        assert "exp" in decoded

    def test_expired_token_is_rejected(self):
        """Test expired tokens raise 401."""
        token = create_access_token({"sub": "5"}, expires_delta=timedelta(seconds=-1))

        with pytest.raises(HTTPException) as excinfo:
            decode_token(token)
        assert excinfo.value.status_code == 401

    def test_invalid_token(self):
        """Test garbage tokens raise 401."""
        with pytest.raises(HTTPException) as excinfo:
            decode_token("not.a.token")
        assert excinfo.value.status_code == 401


class TestCaller:
    """Test caller extraction."""

    def test_member_caller(self):
        """Test the default role is member."""
        caller = caller_from_token(create_access_token({"sub": "42", "email": "maria@example.com"}))

        assert caller.member_id == 42
        assert caller.role == RoleEnum.MEMBER
        assert caller.email == "maria@example.com"
        assert caller.is_admin is False

    def test_admin_caller(self):
        """Test admin tokens."""
        assert caller_from_token(create_access_token({"sub": "1", "role": "admin"})).is_admin is True

    @pytest.mark.parametrize("claims", [{"role": "admin"}, {"sub": "alice"}, {"sub": "3", "role": "owner"}])
    def test_rejected_claims(self, claims):
        """Test tokens without a numeric subject or with an unknown role."""
        with pytest.raises(HTTPException) as excinfo:
            caller_from_token(create_access_token(claims))
        assert excinfo.value.status_code == 401


class TestDependencies:
    """Test the FastAPI caller dependencies."""

    def test_anonymous_caller(self):
        """Test a missing token means a guest request."""
        assert get_optional_caller(None) is None

    def test_current_caller_required(self):
        """Test protected routes need a token."""
        with pytest.raises(HTTPException) as excinfo:
            get_current_caller(None)
        assert excinfo.value.status_code == 401

    def test_require_admin(self):
        """Test members are forbidden from admin routes."""
        member = caller_from_token(create_access_token({"sub": "42"}))
        admin = caller_from_token(create_access_token({"sub": "1", "role": "admin"}))

        with pytest.raises(HTTPException) as excinfo:
            require_admin(member)
        assert excinfo.value.status_code == 403
        assert require_admin(admin) is admin
