"""
Adapters package for the Gateway Service.

Contains the HTTP client wrapper for downstream services. The adapter
encapsulates:

- Base URLs, per-service timeouts and path targets
- Header sanitization in both directions
- Error handling that maps transport failures to shared errors

Keep adapters thin and side-effect free outside of explicit calls.
"""

from .service_proxy import (
    DownstreamService,
    ForwardRequest,
    GatewayError,
    ServiceNotFoundError,
    ServiceProxy,
    ServiceStatus,
    ServiceUnavailableError,
)

__all__ = [
    "DownstreamService",
    "ForwardRequest",
    "GatewayError",
    "ServiceNotFoundError",
    "ServiceProxy",
    "ServiceStatus",
    "ServiceUnavailableError",
]
