# src/task_dashboard/sync/auth.py

from __future__ import annotations

import logging

from ..core.errors import AuthError
from ..core.forms import validate_credentials
from ..core.ports import IdentityProvider

logger = logging.getLogger(__name__)


class AuthService:
    """
    Sign-up / sign-in / sign-out flows behind the auth form.

    Credentials are validated locally first (ValidationError, provider not contacted).
    Provider failures surface as AuthError with the provider's message; no retry.
    The SessionGate picks up the resulting session via the provider's auth events.
    """

    def __init__(self, identity: IdentityProvider) -> None:
        self._identity = identity

    async def sign_up(self, email: str, password: str) -> str:
        email_s, password_s = validate_credentials(email, password)
        try:
            await self._identity.sign_up(email_s, password_s)
        except AuthError:
            raise
        except Exception as e:
            raise AuthError(str(e) or "Sign up failed") from e
        logger.info("Signed up email=%s", email_s)
        return "Signup successful! Check your email."

    async def sign_in(self, email: str, password: str) -> str:
        email_s, password_s = validate_credentials(email, password)
        try:
            await self._identity.sign_in_with_password(email_s, password_s)
        except AuthError:
            raise
        except Exception as e:
            raise AuthError(str(e) or "Login failed") from e
        logger.info("Signed in email=%s", email_s)
        return "Login successful!"

    async def sign_out(self) -> str:
        try:
            await self._identity.sign_out()
        except AuthError:
            raise
        except Exception as e:
            raise AuthError(str(e) or "Logout failed") from e
        return "Logged out."
