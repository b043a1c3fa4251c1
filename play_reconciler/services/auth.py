"""Firebase Admin initialization and ID token verification."""

import threading
from typing import Any, Dict, Optional

import firebase_admin
from firebase_admin import auth, credentials
from firebase_admin.exceptions import FirebaseError

from play_reconciler.config import get_config
from play_reconciler.logging_config import get_logger

logger = get_logger(__name__)

_firebase_app: Optional[firebase_admin.App] = None
_app_lock = threading.Lock()


class AuthenticationError(Exception):
    """Raised when an ID token cannot be verified."""

    def __init__(self, reason: str, message: str):
        super().__init__(message)
        self.reason = reason


def get_firebase_app() -> firebase_admin.App:
    """Get or initialize the Firebase Admin app.

    Uses security.firebase_credentials_file when configured, otherwise
    application default credentials.
    """
    global _firebase_app
    if _firebase_app is not None:
        return _firebase_app

    with _app_lock:
        if _firebase_app is not None:
            return _firebase_app

        # Check if already initialized
        try:
            _firebase_app = firebase_admin.get_app()
            return _firebase_app
        except ValueError:
            pass

        credentials_file = get_config().security.firebase_credentials_file
        if credentials_file:
            _firebase_app = firebase_admin.initialize_app(credentials.Certificate(credentials_file))
        else:
            _firebase_app = firebase_admin.initialize_app()
        logger.info("firebase_admin_initialized", explicit_credentials=bool(credentials_file))
        return _firebase_app


class IdentityTokenVerifier:
    """Verifies Firebase ID tokens sent as bearer credentials."""

    def __init__(self, check_revoked: bool = True):
        self.check_revoked = check_revoked

    def verify(self, token: str) -> Dict[str, Any]:
        """Verify an ID token.

        Args:
            token: Raw bearer token

        Returns:
            Decoded claims including 'uid'

        Raises:
            AuthenticationError: If the token is missing, invalid, expired or revoked
        """
        if not token:
            raise AuthenticationError("missing_token", "Missing ID token")

        try:
            app = get_firebase_app()
            return auth.verify_id_token(token, app=app, check_revoked=self.check_revoked)
        except auth.RevokedIdTokenError as e:
            raise AuthenticationError("revoked_token", "Token has been revoked") from e
        except auth.ExpiredIdTokenError as e:
            raise AuthenticationError("expired_token", "Token has expired") from e
        except auth.InvalidIdTokenError as e:
            raise AuthenticationError("invalid_token", "Invalid token") from e
        except (FirebaseError, ValueError) as e:
            logger.warning("id_token_verification_failed", error=str(e), error_type=type(e).__name__)
            raise AuthenticationError("auth_error", "Authentication failed") from e


_verifier_instance: Optional[IdentityTokenVerifier] = None


def get_token_verifier() -> IdentityTokenVerifier:
    """Get global ID token verifier (singleton)."""
    global _verifier_instance
    if _verifier_instance is None:
        _verifier_instance = IdentityTokenVerifier()
    return _verifier_instance
