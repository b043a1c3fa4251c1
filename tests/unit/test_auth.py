"""Tests for ID token verification and the auth dependencies."""

from unittest.mock import MagicMock, patch

import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials
from firebase_admin import auth

from play_reconciler.api.dependencies import get_optional_claims, require_admin, require_claims
from play_reconciler.services.auth import AuthenticationError, IdentityTokenVerifier

CLAIMS = {"uid": "user-1", "email": "user1@example.com"}


@pytest.fixture
def firebase():
    """Patch app initialization and token verification."""
    with patch("play_reconciler.services.auth.get_firebase_app", return_value=MagicMock()), patch(
        "play_reconciler.services.auth.auth.verify_id_token"
    ) as verify:
        yield verify


def bearer(token):
    return HTTPAuthorizationCredentials(scheme="Bearer", credentials=token)


class TestIdentityTokenVerifier:
    """Test mapping of Firebase errors to AuthenticationError reasons."""

    def test_valid_token(self, firebase):
        firebase.return_value = CLAIMS

        assert IdentityTokenVerifier().verify("id-token") == CLAIMS
        assert firebase.call_args.kwargs["check_revoked"] is True

    def test_missing_token(self, firebase):
        with pytest.raises(AuthenticationError) as exc_info:
            IdentityTokenVerifier().verify("")
        assert exc_info.value.reason == "missing_token"
        firebase.assert_not_called()

    @pytest.mark.parametrize(
        "error,reason",
        [
            (auth.RevokedIdTokenError("revoked"), "revoked_token"),
            (auth.ExpiredIdTokenError("expired", cause=None), "expired_token"),
            (auth.InvalidIdTokenError("invalid"), "invalid_token"),
            (ValueError("malformed"), "auth_error"),
        ],
    )
    def test_errors(self, firebase, error, reason):
        firebase.side_effect = error

        with pytest.raises(AuthenticationError) as exc_info:
            IdentityTokenVerifier().verify("id-token")

        assert exc_info.value.reason == reason


class TestAuthDependencies:
    """Test the FastAPI dependency functions directly."""

    def test_no_credentials(self):
        assert get_optional_claims(None) is None

    def test_valid_credentials(self, firebase):
        firebase.return_value = CLAIMS
        assert get_optional_claims(bearer("id-token")) == CLAIMS

    def test_invalid_credentials_are_anonymous(self, firebase):
        firebase.side_effect = auth.InvalidIdTokenError("invalid")
        assert get_optional_claims(bearer("id-token")) is None

    def test_require_claims(self):
        assert require_claims(CLAIMS) == CLAIMS
        with pytest.raises(HTTPException) as exc_info:
            require_claims(None)
        assert exc_info.value.status_code == 401

    @pytest.mark.parametrize("admin_value", [None, False, "true", 1])
    def test_require_admin_rejects(self, admin_value):
        claims = dict(CLAIMS)
        if admin_value is not None:
            claims["admin"] = admin_value

        with pytest.raises(HTTPException) as exc_info:
            require_admin(claims)

        assert exc_info.value.status_code == 403

    def test_require_admin_accepts(self):
        claims = {**CLAIMS, "admin": True}
        assert require_admin(claims) == claims
