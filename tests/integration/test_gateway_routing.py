"""
Integration tests for Gateway routing flow.

The gateway, auth and products apps run in-process; the gateway's proxy
reaches the other two through ASGI transports keyed by port.
"""

from typing import Dict
from unittest.mock import AsyncMock

import httpx
import pytest
from fastapi.testclient import TestClient

from service_auth.app.keycloak.client import KeycloakClient
from service_auth.app.main import AuthService
from service_gateway.app.adapters.service_proxy import ServiceProxy
from service_gateway.app.auth.jwks import TokenVerifier
from service_gateway.app.main import GatewayService
from service_products.app.database.connection import Database
from service_products.app.main import ProductsService
from service_products.app.repositories.product_repository import ProductRepository
from shared.config import ServiceConfig
from shared.test_helpers import (
    MockTokenGenerator,
    ProductFactory,
    SigningKeyPair,
    jwks_document,
    keycloak_token_response,
)


class PortDispatchTransport(httpx.AsyncBaseTransport):
    """Routes each request to the transport registered for its port."""

    def __init__(self, transports: Dict[int, httpx.AsyncBaseTransport]):
        self.transports = transports

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        transport = self.transports.get(request.url.port)
        if transport is None:
            raise httpx.ConnectError("Connection refused", request=request)
        return await transport.handle_async_request(request)


def keycloak_realm(key_pair):
    """Keycloak endpoints used by the gateway and the auth service."""
    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path.endswith("/certs"):
            return httpx.Response(200, json=jwks_document(key_pair))
        if path.endswith("/token"):
            return httpx.Response(200, json=keycloak_token_response())
        if path.endswith("/.well-known/openid-configuration"):
            return httpx.Response(200, json={"issuer": "x"})
        return httpx.Response(404)
    return handler


@pytest.fixture(scope="module")
def key_pair():
    return SigningKeyPair(kid="integration-key")


@pytest.fixture
def products_database():
    """Products queries answered from Northwind fixture rows."""
    database = AsyncMock(spec=Database)
    database.fetch.return_value = ProductFactory.rows()
    database.fetchrow.return_value = ProductFactory.row(1)
    return database


@pytest.fixture
def gateway(key_pair, products_database):
    """Gateway wired to in-process auth and products services."""
    realm = httpx.MockTransport(keycloak_realm(key_pair))

    auth_config = ServiceConfig(service_name="auth", port=3005)
    auth = AuthService(
        auth_config,
        keycloak=KeycloakClient.from_config(auth_config, client=httpx.AsyncClient(transport=realm)),
    )

    products_config = ServiceConfig(service_name="products", port=3002)
    products = ProductsService(
        products_config,
        database=products_database,
        repository=ProductRepository(products_database),
    )

    config = ServiceConfig(service_name="gateway", port=3000)
    verifier = TokenVerifier(
        config.jwks_url,
        audience=config.keycloak_audience,
        issuer=config.keycloak_issuer,
        client=httpx.AsyncClient(transport=realm),
    )
    proxy = ServiceProxy.from_config(
        config,
        client=httpx.AsyncClient(transport=PortDispatchTransport({
            3005: httpx.ASGITransport(app=auth.app),
            3002: httpx.ASGITransport(app=products.app),
        })),
    )
    return TestClient(GatewayService(config, token_verifier=verifier, proxy=proxy).app)


@pytest.fixture
def auth_headers(key_pair):
    token = MockTokenGenerator(key_pair).generate_access_token()
    return {"Authorization": f"Bearer {token}"}


class TestGatewayRouting:
    """Integration tests for Gateway routing flow."""

    def test_list_products_through_gateway(self, gateway, auth_headers, products_database):
        """Test an authenticated list reaches the products service."""
        response = gateway.get("/api/products", headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert [p["product_name"] for p in data["data"]] == ["Chai", "Chang", "Aniseed Syrup"]
        products_database.fetch.assert_awaited_once()

    def test_category_filter_through_gateway(self, gateway, auth_headers, products_database):
        """Test the query string survives the prefix rewrite."""
        products_database.fetch.return_value = [ProductFactory.row(3, category_id=2)]

        response = gateway.get("/api/products?category=2", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["message"] == "Retrieved 1 products for category 2"
        assert products_database.fetch.await_args.args[1] == 2

    def test_single_product_through_gateway(self, gateway, auth_headers):
        response = gateway.get("/api/products/1", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["data"]["product_id"] == 1

    def test_not_found_relayed(self, gateway, auth_headers, products_database):
        """Test the products service's 404 reaches the caller unchanged."""
        products_database.fetchrow.return_value = None

        response = gateway.get("/api/products/999", headers=auth_headers)

        assert response.status_code == 404
        assert response.json()["error"] == "Product with ID 999 not found"

    def test_create_product_through_gateway(self, gateway, auth_headers, products_database):
        """Test request bodies are forwarded."""
        products_database.fetchrow.return_value = ProductFactory.row(78, product_name="Kombu")

        response = gateway.post("/api/products", json={"product_name": "Kombu"}, headers=auth_headers)

        assert response.status_code == 201
        assert response.json()["data"]["product_name"] == "Kombu"
        assert products_database.fetchrow.await_args.args[1] == "Kombu"

    def test_request_id_shared_end_to_end(self, gateway, auth_headers):
        """Test the downstream envelope carries the gateway's request id."""
        headers = dict(auth_headers, **{"X-Request-ID": "trace-e2e"})

        response = gateway.get("/api/products", headers=headers)

        assert response.headers["X-Request-ID"] == "trace-e2e"
        assert response.json()["requestId"] == "trace-e2e"

    def test_products_require_token(self, gateway, products_database):
        """Test unauthenticated calls never reach the products service."""
        response = gateway.get("/api/products")

        assert response.status_code == 401
        assert response.json()["code"] == "AUTHENTICATION_ERROR"
        products_database.fetch.assert_not_awaited()

    def test_login_through_gateway(self, gateway):
        """Test the public auth prefix reaches the auth service."""
        response = gateway.post("/api/auth/login", json={"username": "admin", "password": "admin"})

        assert response.status_code == 200
        assert response.json()["data"]["accessToken"] == keycloak_token_response()["access_token"]

    def test_unconfigured_service_unreachable(self, gateway, auth_headers):
        """Test a service with nothing listening is a 502."""
        response = gateway.get("/api/suppliers", headers=auth_headers)

        assert response.status_code == 502
        assert response.json()["success"] is False
