"""
Keycloak integration for the Auth service.

All calls to the identity provider go through `KeycloakClient`; network and
provider failures come back as `LoginResult` values rather than exceptions,
except introspection, which raises `IntrospectionError`.
"""

from .client import IntrospectionError, KeycloakClient, LoginResult

__all__ = ["IntrospectionError", "KeycloakClient", "LoginResult"]
