"""
Reverse-proxy adapter relaying gateway requests to downstream services.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

import httpx
from fastapi import Request, Response

from shared.config import BaseConfig
from shared.errors import AccessLayerException
from shared.logging import get_logger, get_request_id
from shared.metrics import MetricsCollector

Header = Tuple[str, str]

# Never forwarded downstream; httpx recomputes framing for the outbound call.
STRIPPED_REQUEST_HEADERS = frozenset({"host", "connection", "content-length", "transfer-encoding"})

# Never relayed back; httpx has already decoded and de-chunked the body.
STRIPPED_RESPONSE_HEADERS = frozenset({"transfer-encoding", "connection", "content-length", "content-encoding"})


class ServiceNotFoundError(AccessLayerException):
    """The router named a service the gateway has no configuration for."""

    def __init__(self, service_name: str):
        super().__init__(
            "SERVICE_NOT_FOUND",
            f"Service '{service_name}' not found",
            status_code=404,
        )


class ServiceUnavailableError(AccessLayerException):
    """The downstream service refused the connection, was not resolvable or timed out."""

    def __init__(self, service_name: str):
        super().__init__(
            "SERVICE_UNAVAILABLE",
            f"Service '{service_name}' is currently unavailable",
            status_code=502,
        )


class GatewayError(AccessLayerException):
    """Any other failure while relaying a request."""

    def __init__(self):
        super().__init__("GATEWAY_ERROR", "Internal gateway error", status_code=500)


@dataclass(frozen=True)
class DownstreamService:
    """Static configuration of one routable service.

    `retries` is carried for operators but requests are never retried.
    """

    name: str
    base_url: str
    timeout: float = 5.0
    retries: int = 3


@dataclass(frozen=True)
class ServiceStatus:
    service: str
    status: str
    url: str

    def to_dict(self) -> Dict[str, str]:
        return {"service": self.service, "status": self.status, "url": self.url}


@dataclass(frozen=True)
class ForwardRequest:
    """Snapshot of an inbound request, taken once at the forwarding boundary."""

    method: str
    path: str
    query: Tuple[Header, ...]
    headers: Tuple[Header, ...]
    body: bytes
    request_id: Optional[str] = None

    @classmethod
    async def from_request(cls, request: Request, path: str) -> "ForwardRequest":
        return cls(
            method=request.method,
            path=path,
            query=tuple(request.query_params.multi_items()),
            headers=tuple(request.headers.items()),
            body=await request.body(),
            request_id=get_request_id(),
        )

    def outbound_headers(self) -> List[Header]:
        """Headers to send downstream: sanitized, with the request id pinned."""
        headers = [
            (name, value)
            for name, value in self.headers
            if name.lower() not in STRIPPED_REQUEST_HEADERS and name.lower() != "x-request-id"
        ]
        if self.request_id:
            headers.append(("x-request-id", self.request_id))
        return headers


def sanitize_response_headers(headers: httpx.Headers) -> List[Header]:
    return [
        (name, value)
        for name, value in headers.multi_items()
        if name.lower() not in STRIPPED_RESPONSE_HEADERS
    ]


class ServiceProxy:
    """Forwards requests to named downstream services and reports their health."""

    def __init__(
        self,
        services: Iterable[DownstreamService],
        *,
        client: Optional[httpx.AsyncClient] = None,
        health_timeout: float = 3.0,
        health_deadline: float = 5.0,
        metrics: Optional[MetricsCollector] = None,
    ) -> None:
        self._services: Dict[str, DownstreamService] = {service.name: service for service in services}
        self._client = client or httpx.AsyncClient()
        self.health_timeout = health_timeout
        self.health_deadline = health_deadline
        self.metrics = metrics
        self.logger = get_logger("gateway.service_proxy")

    @classmethod
    def from_config(cls, config: BaseConfig, **kwargs) -> "ServiceProxy":
        urls = {
            "auth": config.auth_service_url,
            "products": config.products_service_url,
            "suppliers": config.suppliers_service_url,
            "users": config.users_service_url,
        }
        services = [
            DownstreamService(
                name=name,
                base_url=url,
                timeout=config.service_timeout_seconds,
                retries=config.service_retries,
            )
            for name, url in urls.items()
        ]
        kwargs.setdefault("health_timeout", config.health_check_timeout_seconds)
        kwargs.setdefault("health_deadline", config.health_check_deadline_seconds)
        return cls(services, **kwargs)

    @property
    def services(self) -> Dict[str, DownstreamService]:
        return dict(self._services)

    async def close(self) -> None:
        await self._client.aclose()

    async def forward(self, service_name: str, forward_request: ForwardRequest) -> Response:
        """Relay `forward_request` to `service_name` and mirror its response."""
        service = self._services.get(service_name)
        if service is None:
            self.logger.warning("Unknown downstream service", service=service_name)
            raise ServiceNotFoundError(service_name)

        target_url = f"{service.base_url.rstrip('/')}{forward_request.path}"
        self.logger.info(
            "Forwarding request",
            service=service_name,
            method=forward_request.method,
            target_url=target_url,
        )

        start = time.time()
        try:
            downstream = await self._client.request(
                forward_request.method,
                target_url,
                params=list(forward_request.query),
                headers=forward_request.outbound_headers(),
                content=forward_request.body or None,
                timeout=service.timeout,
            )
        except (httpx.ConnectError, httpx.TimeoutException) as exc:
            self.logger.error(
                "Downstream service unreachable",
                service=service_name,
                target_url=target_url,
                error=str(exc),
            )
            self._record(service_name, 502)
            raise ServiceUnavailableError(service_name) from exc
        except Exception as exc:
            self.logger.error(
                "Error forwarding request",
                service=service_name,
                target_url=target_url,
                error=str(exc),
                exc_info=True,
            )
            self._record(service_name, 500)
            raise GatewayError() from exc

        self._record(service_name, downstream.status_code, time.time() - start)
        response = Response(content=downstream.content, status_code=downstream.status_code)
        for name, value in sanitize_response_headers(downstream.headers):
            response.headers.append(name, value)
        return response

    async def health_check(self, service_name: str) -> bool:
        """True when the service answers `GET /health` with 200."""
        service = self._services.get(service_name)
        if service is None:
            return False

        try:
            response = await self._client.get(
                f"{service.base_url.rstrip('/')}/health",
                timeout=self.health_timeout,
            )
        except httpx.HTTPError as exc:
            self.logger.warning("Health check failed", service=service_name, error=str(exc))
            return False
        return response.status_code == 200

    async def service_status(self) -> List[ServiceStatus]:
        """Check every service concurrently; anything past the deadline is unhealthy."""
        tasks = {
            name: asyncio.create_task(self.health_check(name))
            for name in self._services
        }
        if not tasks:
            return []

        done, pending = await asyncio.wait(tasks.values(), timeout=self.health_deadline)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        statuses = []
        for name, task in tasks.items():
            healthy = task in done and task.exception() is None and task.result() is True
            if task in pending:
                self.logger.warning("Health check missed deadline", service=name)
            statuses.append(ServiceStatus(
                service=name,
                status="healthy" if healthy else "unhealthy",
                url=self._services[name].base_url,
            ))
        return statuses

    def _record(self, service_name: str, status_code: int, duration: Optional[float] = None) -> None:
        if self.metrics is None:
            return
        self.metrics.increment_counter("proxy_requests_total", service=service_name, status_code=str(status_code))
        if duration is not None:
            self.metrics.observe_histogram("proxy_request_duration_seconds", duration, service=service_name)
