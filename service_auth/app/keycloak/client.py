"""
Keycloak client for the Auth service.
"""

from typing import Any, Dict, Optional

import httpx
from pydantic import BaseModel

from shared.config import BaseConfig
from shared.errors import AccessLayerException
from shared.logging import get_logger
from shared.metrics import MetricsCollector

TOKEN_TIMEOUT = 10.0
INTROSPECT_TIMEOUT = 5.0
LOGOUT_TIMEOUT = 5.0
HEALTH_TIMEOUT = 5.0

PASSWORD_GRANT_SCOPE = "openid profile email"


class LoginResult(BaseModel):
    """Outcome of a password or refresh-token grant."""

    success: bool
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    token_type: Optional[str] = None
    expires_in: Optional[int] = None
    refresh_expires_in: Optional[int] = None
    error: Optional[str] = None
    message: Optional[str] = None

    @classmethod
    def failure(cls, error: str, message: str) -> "LoginResult":
        return cls(success=False, error=error, message=message)

    def token_data(self) -> Dict[str, Any]:
        """Token fields in the camelCase shape returned to clients."""
        return {
            "accessToken": self.access_token,
            "refreshToken": self.refresh_token,
            "tokenType": self.token_type,
            "expiresIn": self.expires_in,
            "refreshExpiresIn": self.refresh_expires_in,
        }


class IntrospectionError(AccessLayerException):
    """The identity provider could not introspect a token."""

    status_code = 500

    def __init__(self, message: str = "Token introspection failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("INTROSPECTION_ERROR", message, details)


class KeycloakClient:
    """Thin async client over Keycloak's OpenID Connect endpoints."""

    def __init__(
        self,
        *,
        token_url: str,
        introspect_url: str,
        logout_url: str,
        well_known_url: str,
        client_id: str,
        client_secret: str,
        client: Optional[httpx.AsyncClient] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.token_url = token_url
        self.introspect_url = introspect_url
        self.logout_url = logout_url
        self.well_known_url = well_known_url
        self.client_id = client_id
        self.client_secret = client_secret
        self.metrics = metrics
        self.logger = get_logger("auth.keycloak")
        self._client = client or httpx.AsyncClient()

    @classmethod
    def from_config(cls, config: BaseConfig, **kwargs) -> "KeycloakClient":
        return cls(
            token_url=config.token_url,
            introspect_url=config.introspect_url,
            logout_url=config.logout_url,
            well_known_url=config.well_known_url,
            client_id=config.keycloak_client_id,
            client_secret=config.keycloak_client_secret,
            **kwargs,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def authenticate(self, username: str, password: str) -> LoginResult:
        """Exchange user credentials for tokens (direct access grant)."""
        self.logger.info("Attempting authentication", username=username, token_url=self.token_url)
        result = await self._request_tokens(
            {
                "grant_type": "password",
                "username": username,
                "password": password,
                "scope": PASSWORD_GRANT_SCOPE,
            },
            operation="login",
            success_message="Authentication successful",
        )
        if result.success:
            self.logger.info("Authentication successful", username=username)
        return result

    async def refresh_token(self, refresh_token: str) -> LoginResult:
        """Exchange a refresh token for a new token pair."""
        return await self._request_tokens(
            {"grant_type": "refresh_token", "refresh_token": refresh_token},
            operation="refresh",
            success_message="Token refreshed successfully",
        )

    async def introspect_token(self, token: str) -> Dict[str, Any]:
        """Return Keycloak's introspection document for `token`."""
        try:
            response = await self._client.post(
                self.introspect_url,
                data=self._client_credentials(token=token),
                timeout=INTROSPECT_TIMEOUT,
            )
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            self.logger.error("Token introspection failed", error=str(exc))
            self._record("introspect", "error")
            raise IntrospectionError() from exc

        self._record("introspect", "success")
        return payload

    async def logout(self, refresh_token: str) -> bool:
        """Invalidate the session behind `refresh_token`."""
        try:
            response = await self._client.post(
                self.logout_url,
                data=self._client_credentials(refresh_token=refresh_token),
                timeout=LOGOUT_TIMEOUT,
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            self.logger.error("Logout failed", error=str(exc))
            self._record("logout", "error")
            return False

        self._record("logout", "success")
        return True

    async def health_check(self) -> bool:
        """True when the realm's discovery document is served."""
        try:
            response = await self._client.get(self.well_known_url, timeout=HEALTH_TIMEOUT)
        except httpx.HTTPError as exc:
            self.logger.error("Keycloak health check failed", error=str(exc))
            return False
        return response.status_code == 200

    async def _request_tokens(self, form: Dict[str, str], *, operation: str, success_message: str) -> LoginResult:
        try:
            response = await self._client.post(
                self.token_url,
                data=self._client_credentials(**form),
                timeout=TOKEN_TIMEOUT,
            )
        except httpx.HTTPError as exc:
            self.logger.error("Authentication error", operation=operation, error=str(exc))
            result = self.classify_transport_error(exc)
        else:
            result = self._token_result(response, success_message)

        self._record(operation, "success" if result.success else "failure")
        return result

    def _token_result(self, response: httpx.Response, success_message: str) -> LoginResult:
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        if response.status_code == 200:
            if not body.get("access_token"):
                self.logger.error("Keycloak returned no access token")
                return LoginResult.failure("Authentication failed", "Invalid response from Keycloak server")
            return LoginResult(
                success=True,
                access_token=body.get("access_token"),
                refresh_token=body.get("refresh_token"),
                token_type=body.get("token_type"),
                expires_in=body.get("expires_in"),
                refresh_expires_in=body.get("refresh_expires_in"),
                message=success_message,
            )

        self.logger.warning(
            "Keycloak rejected token request",
            status_code=response.status_code,
            error=body.get("error"),
        )
        return self.classify_status(response.status_code, body)

    @staticmethod
    def classify_transport_error(exc: Exception) -> LoginResult:
        """Map a failure to reach Keycloak onto a client-facing result."""
        if isinstance(exc, httpx.ConnectError):
            return LoginResult.failure(
                "Keycloak server is not available",
                "Authentication service is currently unavailable. Please try again later.",
            )
        if isinstance(exc, httpx.TimeoutException):
            return LoginResult.failure(
                "Request timeout",
                "Authentication request timed out. Please try again.",
            )
        return LoginResult.failure("Network error", "Failed to connect to authentication server")

    @staticmethod
    def classify_status(status_code: int, body: Dict[str, Any]) -> LoginResult:
        """Map a Keycloak error response onto a client-facing result."""
        if status_code == 400:
            if body.get("error") == "invalid_grant":
                return LoginResult.failure("Invalid credentials", "Username or password is incorrect")
            return LoginResult.failure(
                "Bad request",
                body.get("error_description") or "Invalid request parameters",
            )
        if status_code == 401:
            return LoginResult.failure("Unauthorized", "Invalid credentials or client configuration")
        if status_code == 403:
            return LoginResult.failure("Forbidden", "Access denied")
        if status_code == 500:
            return LoginResult.failure("Server error", "Keycloak server error. Please try again later.")
        return LoginResult.failure("Authentication failed", f"Unexpected error occurred ({status_code})")

    def _client_credentials(self, **fields: str) -> Dict[str, str]:
        return {"client_id": self.client_id, "client_secret": self.client_secret, **fields}

    def _record(self, operation: str, outcome: str) -> None:
        if self.metrics is not None:
            self.metrics.increment_counter("keycloak_requests_total", operation=operation, outcome=outcome)
