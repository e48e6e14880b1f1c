"""
Caller Authentication for the Migration Trigger

The migration writes rows for every user in the project, so only an
authenticated, privileged caller may start it. This module:
1. Extracts the bearer token from the Authorization header
2. Resolves it to a user through Supabase Auth
3. Checks the user against the configured admin allowlist

Authorization happens here, before a run starts. The migration runner
itself never checks who called it.
"""

from abc import ABC, abstractmethod
from typing import Optional

import structlog
from pydantic import BaseModel

from finance_migrator.config import MigrationSettings, get_settings
from finance_migrator.services.storage.supabase_store import SupabaseClient


logger = structlog.get_logger()


class AuthenticationError(Exception):
    """No valid session (maps to 401)."""
    pass


class AuthorizationError(Exception):
    """Valid session, but the user may not run the migration (maps to 403)."""
    pass


class AuthenticatedUser(BaseModel):
    id: str
    email: Optional[str] = None


def extract_bearer_token(authorization: Optional[str]) -> str:
    """
    Get the token out of an Authorization header.

    Raises:
        AuthenticationError: If the header is missing or not a Bearer token
    """
    if not authorization:
        raise AuthenticationError("Missing Authorization header")

    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthenticationError("Authorization header must be a Bearer token")

    return token.strip()


class AuthServiceInterface(ABC):
    """Resolves a bearer token to a user."""

    @abstractmethod
    async def authenticate(self, token: str) -> AuthenticatedUser:
        """
        Raises:
            AuthenticationError: If the token does not belong to a live session
        """
        pass


class SupabaseAuthService(AuthServiceInterface):
    """Verifies session tokens with Supabase Auth."""

    def __init__(self, client: Optional[SupabaseClient] = None):
        self._client = client or SupabaseClient()

    async def authenticate(self, token: str) -> AuthenticatedUser:
        try:
            response = self._client.auth_client().auth.get_user(token)
        except Exception as e:
            logger.info("auth_token_rejected", error=str(e))
            raise AuthenticationError("Invalid or expired session") from e

        user = getattr(response, "user", None)
        if user is None:
            raise AuthenticationError("Invalid or expired session")

        return AuthenticatedUser(id=str(user.id), email=user.email)


class StaticTokenAuthService(AuthServiceInterface):
    """
    Fixed token -> user mapping.

    For in-memory components and tests, where there is no Supabase Auth.
    """

    def __init__(self, tokens: Optional[dict[str, AuthenticatedUser]] = None):
        self._tokens = dict(tokens or {})

    async def authenticate(self, token: str) -> AuthenticatedUser:
        user = self._tokens.get(token)
        if user is None:
            raise AuthenticationError("Invalid or expired session")
        return user


def authorize_admin(
    user: AuthenticatedUser,
    settings: Optional[MigrationSettings] = None,
) -> None:
    """
    Check the user against the admin allowlist.

    With no allowlist configured every authenticated user is accepted.

    Raises:
        AuthorizationError: If an allowlist exists and the user is not on it
    """
    settings = settings or get_settings().migration
    if not settings.restricts_admins:
        return

    if user.id in settings.admin_user_ids_list:
        return
    if user.email and user.email.lower() in settings.admin_emails_list:
        return

    raise AuthorizationError(f"User {user.id} may not run the migration")
