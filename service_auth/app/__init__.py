"""
Auth Service package for the products platform.

This package exposes the FastAPI application that fronts Keycloak for
password login, token refresh, logout and token validation:

- app.main: Application entrypoint that wires routes and lifecycle.
- app.keycloak: Async client for the Keycloak OpenID Connect endpoints.
- app.services: Local input checks in front of the Keycloak client.
- app.validation: Request body models.

Design notes:
- Keep the package import side-effects minimal; module import must not
  perform network calls. All IO should happen in route handlers or
  explicit startup hooks.
- Use the shared/ utilities for logging, metrics, and errors.
- Treat this package as stateless; tokens live only in Keycloak.
"""
