"""Session service exchanging identity tokens for session credentials.

Handles:
- Identity token verification (Firebase Authentication)
- Session credential creation (signed JWT, fixed lifetime)
"""
import logging
from datetime import timedelta
from typing import Any, Dict

from firebase_admin import auth as firebase_auth
from flask import current_app
from flask_jwt_extended import create_access_token

from app.services.firebase_app import get_firebase_app

logger = logging.getLogger(__name__)

SESSION_COOKIE_NAME = '__session'


class InvalidIdentityToken(Exception):
    """Raised when an identity token is missing, expired, revoked or forged."""
    pass


class SessionService:
    """Service for the session credential endpoint."""

    @staticmethod
    def verify_identity_token(id_token: str) -> Dict[str, Any]:
        """Verify an identity token issued by Firebase Authentication.

        Args:
            id_token (str): Token obtained by the client after sign-in.

        Returns:
            dict: Decoded claims ('uid', 'email', ...).

        Raises:
            InvalidIdentityToken: The token cannot be trusted.
        """
        if not id_token or not isinstance(id_token, str):
            raise InvalidIdentityToken('idToken is required')
        try:
            app = get_firebase_app(current_app.config)
            return firebase_auth.verify_id_token(id_token, app=app, check_revoked=True)
        except (ValueError, firebase_auth.InvalidIdTokenError, firebase_auth.ExpiredIdTokenError,
                firebase_auth.RevokedIdTokenError, firebase_auth.CertificateFetchError,
                firebase_auth.UserDisabledError) as e:
            logger.warning(f"Identity token rejected: {e}")
            raise InvalidIdentityToken(str(e)) from e

    @staticmethod
    def session_lifetime() -> timedelta:
        return timedelta(days=current_app.config.get('SESSION_DAYS', 5))

    @staticmethod
    def create_session_token(claims: Dict[str, Any]) -> str:
        """Create the signed session credential for verified claims.

        Args:
            claims (dict): Decoded identity token claims.

        Returns:
            str: Encoded JWT whose identity is the user id.
        """
        additional_claims = {}
        if claims.get('email'):
            additional_claims['email'] = claims['email']
        return create_access_token(
            identity=claims['uid'],
            additional_claims=additional_claims,
            expires_delta=SessionService.session_lifetime(),
        )
