"""
Auth service for the products platform.
"""

from typing import Any, Dict, Optional, Tuple

from fastapi import Request
from fastapi.responses import RedirectResponse

from shared.base_service import VERSION, BaseService
from shared.config import ServiceConfig
from shared.responses import envelope, utc_timestamp

from .keycloak.client import KeycloakClient, LoginResult
from .services.authentication import AuthenticationService
from .validation.requests import LoginRequest, RefreshTokenRequest


def status_for_error(error: str) -> int:
    """HTTP status for a failed login or refresh, keyed on its error label."""
    if "Invalid credentials" in error or "Unauthorized" in error or "invalid_grant" in error:
        return 401
    if "Validation failed" in error or "Bad request" in error or error.startswith("Missing"):
        return 400
    if "Forbidden" in error:
        return 403
    if "not available" in error or "timeout" in error:
        return 503
    return 500


class AuthService(BaseService):
    """Auth service implementation."""

    internal_error_message = "An unexpected error occurred"

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        *,
        keycloak: Optional[KeycloakClient] = None,
    ):
        super().__init__("auth", 3005, config)
        self.keycloak = keycloak or KeycloakClient.from_config(self.config, metrics=self.metrics)
        self.authentication = AuthenticationService(self.keycloak)

        self._setup_auth_routes()

    async def on_startup(self) -> None:
        self.logger.info(
            "Auth service starting",
            port=self.config.port,
            keycloak=self.config.keycloak_server_url,
            realm=self.config.keycloak_realm,
        )

    async def on_shutdown(self) -> None:
        await self.keycloak.close()

    def _setup_auth_routes(self):
        """Set up auth-specific routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return RedirectResponse(url="/info", status_code=302)

        @self.app.get("/info")
        async def info():
            """Service information endpoint."""
            return {
                "name": "Authentication Service",
                "version": VERSION,
                "environment": self.config.env,
                "timestamp": utc_timestamp(),
                "endpoints": {
                    "login": "POST /auth/login",
                    "refresh": "POST /auth/refresh",
                    "logout": "POST /auth/logout",
                    "validate": "GET /auth/validate",
                    "health": "GET /auth/health",
                },
                "keycloak": {
                    "server": self.config.keycloak_server_url,
                    "realm": self.config.keycloak_realm,
                    "clientId": self.config.keycloak_client_id,
                },
            }

        @self.app.post("/auth/login")
        async def login(body: LoginRequest):
            """Password login against Keycloak."""
            self.logger.info("Login attempt", username=body.username)
            result = await self.authentication.authenticate(body.username, body.password)
            if not result.success:
                self.logger.info("Login failed", username=body.username, error=result.error)
            return self._token_response(result)

        @self.app.post("/auth/refresh")
        async def refresh_token(body: RefreshTokenRequest):
            """Token refresh endpoint."""
            result = await self.authentication.refresh_token(body.refresh_token)
            return self._token_response(result)

        @self.app.post("/auth/logout")
        async def logout(body: RefreshTokenRequest):
            """Token logout endpoint."""
            if await self.authentication.logout(body.refresh_token):
                return envelope(200, success=True, message="Logout successful")
            return envelope(
                500,
                success=False,
                error="Logout failed",
                message="Failed to invalidate tokens",
            )

        @self.app.get("/auth/validate")
        async def validate_token(request: Request):
            """Introspect the caller's bearer token."""
            authorization = request.headers.get("Authorization")
            if not authorization or not authorization.startswith("Bearer "):
                return envelope(
                    400,
                    success=False,
                    error="Invalid authorization header",
                    message="Bearer token required",
                )

            token_info = await self.authentication.validate_token(authorization[len("Bearer "):])
            if token_info.get("active"):
                return envelope(200, success=True, data=token_info, message="Token is valid")
            return envelope(
                401,
                success=False,
                error="Invalid token",
                message="Token is not active or has expired",
            )

        @self.app.get("/auth/health")
        async def auth_health():
            """Keycloak reachability."""
            healthy = await self.authentication.health_check()
            return envelope(
                200 if healthy else 503,
                success=healthy,
                data={
                    "service": "auth-service",
                    "keycloak": "healthy" if healthy else "unhealthy",
                },
                message="Service is healthy" if healthy else "Keycloak is not available",
            )

    def _token_response(self, result: LoginResult):
        if result.success:
            return envelope(200, success=True, data=result.token_data(), message=result.message)
        return envelope(
            status_for_error(result.error or ""),
            success=False,
            error=result.error,
            message=result.message,
        )

    async def health(self) -> Tuple[int, Dict[str, Any]]:
        return 200, {
            "status": "healthy",
            "service": "auth-service",
            "timestamp": utc_timestamp(),
            "version": VERSION,
            "keycloak": {
                "server": self.config.keycloak_server_url,
                "realm": self.config.keycloak_realm,
            },
        }


def create_app():
    """Create FastAPI application."""
    service = AuthService()
    return service.app


if __name__ == "__main__":
    service = AuthService()
    service.run()
