"""
API Gateway service for the products platform.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import httpx
from fastapi import Request

from shared.base_service import VERSION, BaseService
from shared.config import ServiceConfig
from shared.errors import AuthenticationError
from shared.logging import set_user_context
from shared.responses import utc_timestamp

from .adapters.service_proxy import ForwardRequest, ServiceProxy
from .auth.jwks import AuthContext, SigningKeyCache, TokenVerificationError, TokenVerifier

PROXY_METHODS = ["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"]


@dataclass(frozen=True)
class RouteRule:
    """Maps a public path prefix onto a downstream service path prefix."""

    prefix: str
    service: str
    target_prefix: str
    public: bool = False

    def target_path(self, rest: str) -> str:
        return f"{self.target_prefix}{rest}"


ROUTE_RULES: Tuple[RouteRule, ...] = (
    RouteRule("/api/auth", "auth", "/auth", public=True),
    RouteRule("/api/products", "products", "/api/v1/products"),
    RouteRule("/api/suppliers", "suppliers", "/api/v1/suppliers"),
    RouteRule("/api/users", "users", "/api/v1/users"),
)


class GatewayService(BaseService):
    """API Gateway service implementation."""

    internal_error = "Internal gateway error"

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        *,
        token_verifier: Optional[TokenVerifier] = None,
        proxy: Optional[ServiceProxy] = None,
    ):
        super().__init__("gateway", 3000, config)

        self.token_verifier = token_verifier or TokenVerifier(
            self.config.jwks_url,
            audience=self.config.keycloak_audience,
            issuer=self.config.keycloak_issuer,
            cache=SigningKeyCache(
                max_entries=self.config.jwks_cache_max_entries,
                max_age=self.config.jwks_cache_max_age_seconds,
            ),
            http_timeout=self.config.jwks_timeout_seconds,
            requests_per_minute=self.config.jwks_requests_per_minute,
            debug_context=self._debug_context(),
        )
        self.proxy = proxy or ServiceProxy.from_config(self.config, metrics=self.metrics)

        self._setup_gateway_routes()

        # Expose service instance via app state for introspection/testing
        self.app.state.gateway_service = self

    def cors_options(self) -> Dict[str, Any]:
        return {
            "allow_origins": ["*"],
            "allow_credentials": False,
            "allow_methods": PROXY_METHODS,
            "allow_headers": [
                "Origin", "X-Requested-With", "Content-Type", "Accept", "Authorization",
                "Cache-Control", "Pragma", "X-API-Key", "X-Request-ID",
            ],
            "expose_headers": ["X-Request-ID", "X-Response-Time"],
            "max_age": 86400,
        }

    async def on_startup(self) -> None:
        self.logger.info(
            "Gateway starting",
            port=self.config.port,
            jwks_url=self.config.jwks_url,
            services={name: svc.base_url for name, svc in self.proxy.services.items()},
        )
        await self.token_verifier.warmup()

    async def on_shutdown(self) -> None:
        await self.token_verifier.close()
        await self.proxy.close()

    def _debug_context(self) -> Dict[str, Any]:
        return {
            "keycloakUrl": self.config.keycloak_server_url,
            "realm": self.config.keycloak_realm,
            "expectedIssuer": self.config.keycloak_issuer,
            "expectedAudience": self.config.keycloak_audience,
        }

    async def authenticate_request(self, request: Request) -> AuthContext:
        """Verify the caller's bearer token; raise a 401/500 error otherwise."""
        try:
            context = await self.token_verifier.authenticate(request.headers.get("Authorization"))
        except TokenVerificationError as exc:
            self.metrics.increment_counter("token_verifications_total", result=exc.failure.value)
            raise
        except Exception as exc:
            self.logger.error("Authentication middleware error", error=str(exc), exc_info=True)
            self.metrics.record_error("authentication")
            raise AuthenticationError(
                "Internal authentication error",
                status_code=500,
                hint="Please try again or contact support",
            ) from exc

        self.metrics.increment_counter("token_verifications_total", result="accepted")
        set_user_context(context.subject)
        return context

    def _setup_gateway_routes(self):
        """Set up gateway-specific routes."""

        @self.app.get("/info")
        async def info():
            """Static gateway configuration."""
            return {
                "name": "API Gateway",
                "version": VERSION,
                "environment": self.config.env,
                "timestamp": utc_timestamp(),
                "services": {name: svc.base_url for name, svc in self.proxy.services.items()},
            }

        @self.app.get("/auth-test")
        async def auth_test():
            """Identity provider reachability diagnostics."""
            return await self._identity_provider_diagnostics()

        for rule in ROUTE_RULES:
            self._register_proxy_route(rule)

    def _register_proxy_route(self, rule: RouteRule) -> None:
        async def proxy_route(request: Request, rest: str = ""):
            if not rule.public:
                await self.authenticate_request(request)
            forward_request = await ForwardRequest.from_request(request, rule.target_path(rest))
            return await self.proxy.forward(rule.service, forward_request)

        proxy_route.__name__ = f"proxy_{rule.service}"
        self.app.add_api_route(
            f"{rule.prefix}{{rest:path}}",
            proxy_route,
            methods=PROXY_METHODS,
            include_in_schema=False,
        )

    async def health(self) -> Tuple[int, Dict[str, Any]]:
        """Aggregate downstream health; any unhealthy service degrades the gateway."""
        try:
            statuses = await self.proxy.service_status()
        except Exception as exc:
            self.logger.error("Health check error", error=str(exc), exc_info=True)
            return 500, {
                "status": "unhealthy",
                "error": "Failed to check service health",
                "timestamp": utc_timestamp(),
            }

        all_healthy = all(status.status == "healthy" for status in statuses)
        return (200 if all_healthy else 503), {
            "status": "healthy" if all_healthy else "degraded",
            "gateway": "healthy",
            "services": [status.to_dict() for status in statuses],
            "timestamp": utc_timestamp(),
            "version": VERSION,
        }

    async def _identity_provider_diagnostics(self) -> Dict[str, Any]:
        tests: Dict[str, Any] = {
            "keycloak_reachable": False,
            "realm_exists": False,
            "config": None,
        }

        try:
            async with httpx.AsyncClient(timeout=5.0) as client:
                response = await client.get(self.config.well_known_url)
            if response.status_code == 200:
                tests["keycloak_reachable"] = True
                tests["realm_exists"] = True
                tests["config"] = response.json()
            else:
                tests["keycloak_reachable"] = True
        except (httpx.HTTPError, ValueError) as exc:
            self.logger.warning("Keycloak discovery check failed", error=str(exc))

        tests.update(await self.token_verifier.check_provider())
        return {
            "message": "Authentication service test results",
            "keycloak": {
                "url": self.config.keycloak_server_url,
                "realm": self.config.keycloak_realm,
                "wellKnownUrl": self.config.well_known_url,
                "jwksUrl": self.config.jwks_url,
            },
            "tests": tests,
            "timestamp": utc_timestamp(),
        }


def create_app():
    """Create FastAPI application."""
    service = GatewayService()
    return service.app


if __name__ == "__main__":
    service = GatewayService()
    service.run()
