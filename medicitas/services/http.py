"""
HTTP transport for the appointment backend.

Owns the pooled httpx client, attaches the session's bearer token,
turns every failure into a TransportError and normalizes the backend's
response shapes (bare arrays vs. {"data": [...]}) into one canonical form.
"""

from typing import Any, List, Optional

import httpx
from loguru import logger

from medicitas.config import LOGIN_PATH, Settings, get_settings
from medicitas.errors import SessionExpiredError, TransportError
from medicitas.models.session import SessionContext

DEFAULT_HEADERS = {
    "Content-Type": "application/json",
    "Accept": "application/json",
}


def unwrap_collection(payload: Any) -> List[Any]:
    """
    Normalize a list response.

    Accepts a bare array or a wrapper with a "data" array (paginated or
    not). Anything else is treated as an empty collection.
    """
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict) and isinstance(payload.get("data"), list):
        return payload["data"]
    return []


def unwrap_record(payload: Any) -> dict:
    """Normalize a single-record response ({"data": {...}} or bare object)."""
    if isinstance(payload, dict):
        if "data" not in payload and payload:
            return payload
        if isinstance(payload.get("data"), dict):
            return payload["data"]
    raise TransportError("The API did not return the expected record.")


def extract_error_message(response: httpx.Response) -> str:
    """Best human-readable message from an error response."""
    try:
        body = response.json()
    except ValueError:
        body = None

    if isinstance(body, dict):
        if body.get("message"):
            return str(body["message"])
        errors = body.get("errors")
        if isinstance(errors, dict) and errors:
            first = next(iter(errors.values()))
            if isinstance(first, list) and first:
                return str(first[0])
            return "Validation error"
    return f"HTTP {response.status_code}"


class ApiClient:
    """
    Async client for the appointment backend.

    Implements connection pooling and attaches the bearer token of the
    bound SessionContext to every request.
    """

    def __init__(
        self,
        session: Optional[SessionContext] = None,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings or get_settings()
        self.session = session
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client with connection pooling."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.settings.api_base_url,
                timeout=httpx.Timeout(self.settings.api_timeout),
                headers=DEFAULT_HEADERS,
                limits=httpx.Limits(
                    max_connections=self.settings.connection_pool_size,
                    max_keepalive_connections=self.settings.connection_pool_size // 2,
                ),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    def _auth_headers(self) -> tuple[dict, Optional[str]]:
        if self.session is not None and self.session.is_active:
            token = self.session.token
            return {"Authorization": f"Bearer {token}"}, token
        return {}, None

    def _handle_unauthorized(self, path: str, token_used: Optional[str]) -> None:
        """
        Invalidate the session after a 401.

        Only a request that carried the session's current token may end
        it; a 401 for the login call or for a request issued with an
        older token leaves the current session alone.
        """
        if path.strip("/") == LOGIN_PATH:
            return
        session = self.session
        if session is None or token_used is None or session.token != token_used:
            logger.warning(f"Ignoring 401 for {path}: not issued with the current token")
            return
        session.invalidate("token rejected by backend")

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[dict] = None,
        json: Optional[Any] = None,
    ) -> Any:
        """
        Issue a request and return the decoded JSON body.

        Raises:
            TransportError: on network failure, timeout, non-2xx or bad JSON
            SessionExpiredError: on a 401 for the current token
        """
        client = await self._get_client()
        headers, token_used = self._auth_headers()

        try:
            response = await client.request(
                method, path, params=params, json=json, headers=headers
            )
        except httpx.TimeoutException as e:
            logger.error(f"Timeout calling {method} {path}: {e}")
            raise TransportError("The request timed out.") from e
        except httpx.RequestError as e:
            logger.error(f"Request error calling {method} {path}: {e}")
            raise TransportError(f"Could not reach the server: {e}") from e

        if response.status_code == httpx.codes.UNAUTHORIZED:
            self._handle_unauthorized(path, token_used)
            message = extract_error_message(response)
            logger.error(f"Unauthorized calling {method} {path}: {message}")
            raise SessionExpiredError(message, status_code=response.status_code)

        if response.is_error:
            message = extract_error_message(response)
            if response.status_code == httpx.codes.UNPROCESSABLE_ENTITY:
                logger.error(f"Validation error calling {method} {path}: {response.text}")
            else:
                logger.error(f"HTTP {response.status_code} calling {method} {path}: {message}")
            raise TransportError(message, status_code=response.status_code)

        if response.status_code == httpx.codes.NO_CONTENT or not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            logger.error(f"Malformed JSON from {method} {path}: {e}")
            raise TransportError("The server returned an invalid response.") from e

    async def get(self, path: str, params: Optional[dict] = None) -> Any:
        return await self.request("GET", path, params=params)

    async def post(self, path: str, json: Optional[Any] = None) -> Any:
        return await self.request("POST", path, json=json)

    async def put(self, path: str, json: Optional[Any] = None) -> Any:
        return await self.request("PUT", path, json=json)

    async def get_collection(self, path: str, params: Optional[dict] = None) -> List[Any]:
        """GET a list resource, normalized to a plain list."""
        return unwrap_collection(await self.get(path, params=params))
