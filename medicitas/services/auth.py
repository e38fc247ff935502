"""
Authentication Service - creates and ends SessionContexts.

Login binds the new session to the ApiClient so that every later
request carries its token; logout always invalidates locally, even
when the backend call fails.
"""

from loguru import logger
from pydantic import ValidationError as PydanticValidationError

from medicitas.config import DEVICE_NAME, LOGIN_PATH, LOGOUT_PATH
from medicitas.errors import TransportError
from medicitas.models.session import SessionContext, UserProfile
from medicitas.services.http import ApiClient


class AuthService:
    """Login / logout against the backend's token endpoints."""

    def __init__(self, api: ApiClient):
        self._api = api

    async def login(self, email: str, password: str) -> SessionContext:
        """
        Authenticate and return a new active session.

        Raises:
            TransportError: on bad credentials or transport failure
        """
        payload = await self._api.post(
            LOGIN_PATH,
            json={"email": email, "password": password, "device_name": DEVICE_NAME},
        )
        if not isinstance(payload, dict) or not payload.get("token"):
            raise TransportError("The login response did not include a token.")

        try:
            user = UserProfile.model_validate(payload.get("user") or {})
        except PydanticValidationError as e:
            raise TransportError("The login response did not include a valid user.") from e

        previous = self._api.session
        if previous is not None:
            previous.invalidate("replaced by a new login")

        session = SessionContext(token=payload["token"], user=user)
        self._api.session = session
        logger.info(f"Logged in as user {user.id} ({user.role})")
        return session

    async def logout(self) -> None:
        """End the bound session on the backend and locally."""
        session = self._api.session
        if session is None:
            return
        try:
            await self._api.post(LOGOUT_PATH)
        except TransportError as e:
            logger.warning(f"Logout call failed, clearing the session locally: {e}")
        finally:
            session.invalidate("logout")
            self._api.session = None
