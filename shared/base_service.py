"""
Base service class for the products platform services.
"""

import time
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional, Tuple

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.exceptions import HTTPException as StarletteHTTPException

from shared.config import ServiceConfig, get_config
from shared.errors import AccessLayerException
from shared.logging import clear_context, configure_logging, get_logger, set_request_id
from shared.metrics import get_metrics_collector
from shared.responses import ApiResponse, envelope

VERSION = "1.0.0"


class BaseService:
    """Base service class with common functionality."""

    # Body of the catch-all 500 response; services override the wording.
    internal_error = "Internal server error"
    internal_error_message: Optional[str] = None

    def __init__(self, service_name: str, port: int, config: Optional[ServiceConfig] = None):
        self.service_name = service_name
        self.port = port
        self.config = config or get_config(service_name, port)

        configure_logging(service_name, self.config.log_level)
        self.logger = get_logger(f"{service_name}.service")
        self.metrics = get_metrics_collector(service_name)
        self._start_time = time.time()

        self.app = self._create_app()
        self._setup_middleware()
        self._setup_routes()

    def _create_app(self) -> FastAPI:
        """Create FastAPI application."""
        return FastAPI(
            title=f"{self.service_name.title()} Service",
            description=f"Products Platform - {self.service_name.title()} Service",
            version=VERSION,
            docs_url="/docs" if self.config.is_development else None,
            redoc_url="/redoc" if self.config.is_development else None,
            lifespan=self._lifespan,
        )

    @asynccontextmanager
    async def _lifespan(self, app: FastAPI):
        await self.on_startup()
        try:
            yield
        finally:
            await self.on_shutdown()

    async def on_startup(self) -> None:
        """Acquire resources. Override in subclasses."""

    async def on_shutdown(self) -> None:
        """Release resources. Override in subclasses."""

    def cors_options(self) -> Dict[str, Any]:
        """CORS settings; services with different browser exposure override this."""
        return {
            "allow_origins": self.config.cors_origins,
            "allow_credentials": True,
            "allow_methods": ["GET", "POST", "PUT", "DELETE", "OPTIONS"],
            "allow_headers": ["Content-Type", "Authorization", "X-Request-ID"],
            "expose_headers": ["X-Request-ID"],
        }

    def _setup_middleware(self):
        """Set up middleware."""

        @self.app.middleware("http")
        async def request_context(request: Request, call_next):
            request_id = set_request_id(request.headers.get("X-Request-ID"))
            start_time = time.time()

            try:
                response = await call_next(request)
            except Exception as exc:
                self.logger.error(
                    "Unhandled exception",
                    method=request.method,
                    path=request.url.path,
                    error=str(exc),
                    exc_info=True,
                )
                self.metrics.record_error(type(exc).__name__)
                response = envelope(
                    500,
                    success=False,
                    error=self.internal_error,
                    message=self.internal_error_message,
                )

            duration = time.time() - start_time
            self.metrics.record_http_request(
                method=request.method,
                endpoint=request.url.path,
                status_code=response.status_code,
                duration=duration
            )
            self.logger.info(
                "HTTP request",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round(duration * 1000, 2)
            )

            response.headers["X-Request-ID"] = request_id
            clear_context()
            return response

        # Added last so it wraps everything, including error responses.
        self.app.add_middleware(CORSMiddleware, **self.cors_options())

    def _setup_routes(self):
        """Set up common routes."""

        @self.app.get("/health")
        async def health_check():
            """Health check endpoint."""
            status_code, payload = await self.health()
            self.metrics.record_health_check("ok" if status_code < 400 else "error")
            return JSONResponse(status_code=status_code, content=payload)

        @self.app.get("/metrics")
        async def metrics_endpoint():
            """Prometheus metrics endpoint."""
            return Response(
                content=generate_latest(self.metrics.registry),
                media_type=CONTENT_TYPE_LATEST
            )

        @self.app.exception_handler(AccessLayerException)
        async def access_layer_exception_handler(request: Request, exc: AccessLayerException):
            """Handle AccessLayerException."""
            self.logger.warning(
                "Access layer error",
                code=exc.code,
                message=exc.message,
                status_code=exc.status_code,
                details=exc.details
            )
            body = exc.to_response().model_dump(by_alias=True, exclude_none=True)
            if not self.config.is_development:
                body.pop("debug", None)
            return JSONResponse(status_code=exc.status_code, content=body)

        @self.app.exception_handler(RequestValidationError)
        async def validation_exception_handler(request: Request, exc: RequestValidationError):
            """Render request validation failures as a 400 envelope."""
            details = [
                {"loc": list(error.get("loc", ())), "msg": error.get("msg"), "type": error.get("type")}
                for error in exc.errors()
            ]
            return envelope(
                400,
                success=False,
                error="Validation failed",
                message="Invalid request parameters",
                details=details,
            )

        @self.app.exception_handler(StarletteHTTPException)
        async def http_exception_handler(request: Request, exc: StarletteHTTPException):
            """Render routing errors with the envelope, naming the unmatched route."""
            if exc.status_code == 404:
                self.logger.warning("Route not found", method=request.method, path=request.url.path)
                body = ApiResponse(success=False, error="Route not found").to_dict()
                body.update({"path": request.url.path, "method": request.method})
                return JSONResponse(status_code=404, content=body)
            return envelope(exc.status_code, success=False, error=str(exc.detail), headers=exc.headers)

    async def health(self) -> Tuple[int, Dict[str, Any]]:
        """Return the status code and body of `/health`. Override in subclasses."""
        return 200, {
            "service": self.service_name,
            "status": "ok",
            "uptime_seconds": self._get_uptime(),
            "version": VERSION,
        }

    def _get_uptime(self) -> float:
        """Get service uptime in seconds."""
        return time.time() - self._start_time

    def run(self):
        """Run the service."""
        import uvicorn
        uvicorn.run(
            self.app,
            host=self.config.host,
            port=self.config.port,
            log_level=self.config.log_level.lower()
        )
