"""
Credential handling in front of the Keycloak client.
"""

from typing import Any, Dict, Optional

from shared.errors import ValidationError
from shared.logging import get_logger

from ..keycloak.client import KeycloakClient, LoginResult


class AuthenticationService:
    """Validates caller input locally, then delegates to Keycloak."""

    def __init__(self, keycloak: KeycloakClient):
        self.keycloak = keycloak
        self.logger = get_logger("auth.authentication")

    async def authenticate(self, username: Optional[str], password: Optional[str]) -> LoginResult:
        if not username or not password:
            return LoginResult.failure("Missing credentials", "Username and password are required")

        username = username.strip()
        password = password.strip()
        if not username or not password:
            return LoginResult.failure("Invalid credentials", "Username and password cannot be empty")

        return await self.keycloak.authenticate(username, password)

    async def refresh_token(self, refresh_token: Optional[str]) -> LoginResult:
        if not refresh_token or not refresh_token.strip():
            return LoginResult.failure("Missing refresh token", "Refresh token is required")

        return await self.keycloak.refresh_token(refresh_token.strip())

    async def validate_token(self, token: Optional[str]) -> Dict[str, Any]:
        """Introspect `token`; raises `ValidationError` when it is blank."""
        if not token or not token.strip():
            raise ValidationError("Token is required")

        return await self.keycloak.introspect_token(token.strip())

    async def logout(self, refresh_token: Optional[str]) -> bool:
        if not refresh_token or not refresh_token.strip():
            self.logger.warning("Logout requested without a refresh token")
            return False

        return await self.keycloak.logout(refresh_token.strip())

    async def health_check(self) -> bool:
        return await self.keycloak.health_check()
