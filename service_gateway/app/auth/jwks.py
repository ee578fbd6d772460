"""
JSON Web Key Set (JWKS) token verification for the API Gateway.
"""

from __future__ import annotations

import asyncio
import time
from collections import OrderedDict, deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Tuple

import httpx
from jose import ExpiredSignatureError, JWTError, jwt
from jose.exceptions import JWTClaimsError

from shared.errors import AuthenticationError
from shared.logging import get_logger

ALGORITHM = "RS256"
USER_AGENT = "API-Gateway-JWKS-Client/1.0.0"


class VerificationFailure(str, Enum):
    """Reasons a bearer token can be rejected."""

    MISSING_HEADER = "missing_header"
    MISSING_TOKEN = "missing_token"
    PROVIDER_UNAVAILABLE = "provider_unavailable"
    REALM_NOT_FOUND = "realm_not_found"
    KEY_NOT_FOUND = "key_not_found"
    MALFORMED_TOKEN = "malformed_token"
    INVALID_SIGNATURE = "invalid_signature"
    AUDIENCE_MISMATCH = "audience_mismatch"
    ISSUER_MISMATCH = "issuer_mismatch"
    TOKEN_EXPIRED = "token_expired"
    INVALID_TOKEN = "invalid_token"


_RELOGIN_HINT = "Please login again to get a new token"

FAILURE_MESSAGES: Dict[VerificationFailure, Tuple[str, str]] = {
    VerificationFailure.MISSING_HEADER: (
        "No authorization header provided",
        "Include Authorization: Bearer <token> header",
    ),
    VerificationFailure.MISSING_TOKEN: (
        "No token provided",
        "Authorization header format: Bearer <token>",
    ),
    VerificationFailure.PROVIDER_UNAVAILABLE: (
        "Keycloak server is not available",
        "Please try again later",
    ),
    VerificationFailure.REALM_NOT_FOUND: (
        "Keycloak server or realm not found",
        "Please check Keycloak server configuration",
    ),
    VerificationFailure.KEY_NOT_FOUND: (
        "Signing key not found",
        _RELOGIN_HINT,
    ),
    VerificationFailure.MALFORMED_TOKEN: (
        "Malformed token",
        _RELOGIN_HINT,
    ),
    VerificationFailure.INVALID_SIGNATURE: (
        "Invalid token signature",
        _RELOGIN_HINT,
    ),
    VerificationFailure.AUDIENCE_MISMATCH: (
        "Token audience mismatch",
        "Token was issued for a different client",
    ),
    VerificationFailure.ISSUER_MISMATCH: (
        "Token issuer mismatch",
        "Token was issued by a different server",
    ),
    VerificationFailure.TOKEN_EXPIRED: (
        "Token has expired",
        _RELOGIN_HINT,
    ),
    VerificationFailure.INVALID_TOKEN: (
        "Invalid or expired token",
        _RELOGIN_HINT,
    ),
}


class TokenVerificationError(AuthenticationError):
    """A bearer token was rejected; always rendered as 401."""

    def __init__(
        self,
        failure: VerificationFailure,
        *,
        details: Optional[Dict[str, Any]] = None,
        debug: Optional[Dict[str, Any]] = None,
    ) -> None:
        message, hint = FAILURE_MESSAGES[failure]
        super().__init__(message, details, hint=hint)
        self.failure = failure
        self.debug = debug

    def debug_info(self) -> Optional[Dict[str, Any]]:
        return self.debug


@dataclass(frozen=True)
class AuthContext:
    """Authenticated request context derived from a verified JWT."""

    subject: str
    username: Optional[str]
    roles: FrozenSet[str]
    claims: Dict[str, Any] = field(hash=False)
    token: str = field(repr=False)


@dataclass(frozen=True)
class KeyLookupResult:
    """Outcome of a signing key lookup: either a JWK or the reason there is none."""

    key: Optional[Dict[str, Any]] = None
    failure: Optional[VerificationFailure] = None
    detail: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.key is not None


class SigningKeyCache:
    """Signing keys by key id, bounded in both age and entry count."""

    def __init__(self, max_entries: int = 5, max_age: float = 600.0, clock: Callable[[], float] = time.monotonic):
        self.max_entries = max_entries
        self.max_age = max_age
        self._clock = clock
        self._entries: "OrderedDict[str, Tuple[Dict[str, Any], float]]" = OrderedDict()

    def get(self, kid: str) -> Optional[Dict[str, Any]]:
        entry = self._entries.get(kid)
        if entry is None:
            return None

        key, stored_at = entry
        if self._clock() - stored_at >= self.max_age:
            del self._entries[kid]
            return None

        self._entries.move_to_end(kid)
        return key

    def put(self, kid: str, key: Dict[str, Any]) -> None:
        self._entries[kid] = (key, self._clock())
        self._entries.move_to_end(kid)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, kid: object) -> bool:
        return kid in self._entries


class TokenVerifier:
    """Verifies bearer tokens against the identity provider's remote JWKS."""

    def __init__(
        self,
        jwks_url: str,
        *,
        audience: str,
        issuer: str,
        cache: Optional[SigningKeyCache] = None,
        http_timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
        debug_context: Optional[Dict[str, Any]] = None,
        requests_per_minute: int = 10,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.jwks_url = jwks_url
        self.audience = audience
        self.issuer = issuer
        self.cache = cache or SigningKeyCache()
        self.debug_context = debug_context
        self.requests_per_minute = requests_per_minute
        self.logger = get_logger("gateway.auth.jwks")

        self._clock = clock
        self._fetch_times: "deque[float]" = deque()
        self._lock = asyncio.Lock()
        self._client = client or httpx.AsyncClient(
            timeout=http_timeout,
            headers={"User-Agent": USER_AGENT},
        )

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def warmup(self) -> None:
        """Eagerly load signing keys so the first request does not pay the cost."""
        try:
            keys = await self._fetch_jwks()
        except (httpx.HTTPError, ValueError) as exc:
            self.logger.warning("JWKS warmup failed", jwks_url=self.jwks_url, error=str(exc))
            return

        for key in keys[: self.cache.max_entries]:
            kid = key.get("kid")
            if isinstance(kid, str):
                self.cache.put(kid, key)
        self.logger.info("JWKS warmup complete", keys_count=len(keys))

    async def authenticate(self, authorization: Optional[str]) -> AuthContext:
        """Authenticate an `Authorization` header value and return the caller's context."""
        if not authorization:
            raise self._error(VerificationFailure.MISSING_HEADER)

        parts = authorization.split()
        if len(parts) < 2 or parts[0].lower() != "bearer":
            raise self._error(VerificationFailure.MISSING_TOKEN)

        token = parts[1]
        claims = await self.verify(token)
        subject = claims.get("sub")
        return AuthContext(
            subject=subject if isinstance(subject, str) else "",
            username=claims.get("preferred_username"),
            roles=frozenset(self._extract_roles(claims)),
            claims=claims,
            token=token,
        )

    async def verify(self, token: str) -> Dict[str, Any]:
        """Verify signature, audience, issuer and expiry; return the claims."""
        try:
            header = jwt.get_unverified_header(token)
        except JWTError as exc:
            raise self._error(VerificationFailure.MALFORMED_TOKEN, error=str(exc)) from exc

        kid = header.get("kid")
        if not isinstance(kid, str) or not kid:
            raise self._error(VerificationFailure.KEY_NOT_FOUND)

        lookup = await self.get_signing_key(kid)
        if not lookup.ok:
            raise self._error(lookup.failure or VerificationFailure.KEY_NOT_FOUND, kid=kid, error=lookup.detail)

        try:
            claims = jwt.decode(
                token,
                lookup.key,
                algorithms=[ALGORITHM],
                audience=self.audience,
                issuer=self.issuer,
            )
        except ExpiredSignatureError as exc:
            raise self._error(VerificationFailure.TOKEN_EXPIRED) from exc
        except JWTClaimsError as exc:
            raise self._error(self._classify_claims_error(exc), error=str(exc)) from exc
        except JWTError as exc:
            failure = VerificationFailure.INVALID_TOKEN
            if "signature" in str(exc).lower():
                failure = VerificationFailure.INVALID_SIGNATURE
            raise self._error(failure, error=str(exc)) from exc

        # jose only checks `aud` when the claim is present.
        if "aud" not in claims:
            raise self._error(VerificationFailure.AUDIENCE_MISMATCH, error="Token has no audience")
        return claims

    async def get_signing_key(self, kid: str) -> KeyLookupResult:
        """Return the JWK for `kid`, fetching the key set on a cache miss."""
        cached = self.cache.get(kid)
        if cached is not None:
            return KeyLookupResult(key=cached)

        async with self._lock:
            # Another request may have filled the cache while we waited.
            cached = self.cache.get(kid)
            if cached is not None:
                return KeyLookupResult(key=cached)

            if not self._take_fetch_budget():
                self.logger.warning("JWKS fetch budget spent", kid=kid, requests_per_minute=self.requests_per_minute)
                return KeyLookupResult(
                    failure=VerificationFailure.KEY_NOT_FOUND,
                    detail="JWKS request limit reached",
                )

            try:
                keys = await self._fetch_jwks()
            except httpx.HTTPStatusError as exc:
                self.logger.error(
                    "JWKS endpoint returned an error",
                    jwks_url=self.jwks_url,
                    status_code=exc.response.status_code,
                )
                failure = VerificationFailure.PROVIDER_UNAVAILABLE
                if exc.response.status_code == 404:
                    failure = VerificationFailure.REALM_NOT_FOUND
                return KeyLookupResult(failure=failure, detail=str(exc))
            except (httpx.HTTPError, ValueError) as exc:
                self.logger.error("Error fetching JWKS", jwks_url=self.jwks_url, kid=kid, error=str(exc))
                return KeyLookupResult(failure=VerificationFailure.PROVIDER_UNAVAILABLE, detail=str(exc))

            for key in keys:
                if key.get("kid") == kid:
                    self.cache.put(kid, key)
                    return KeyLookupResult(key=key)

        self.logger.warning("Signing key not found", kid=kid, available=[key.get("kid") for key in keys])
        return KeyLookupResult(failure=VerificationFailure.KEY_NOT_FOUND, detail=f"kid {kid} not in key set")

    def _take_fetch_budget(self) -> bool:
        """Record a key-lookup fetch unless the last minute already used the budget."""
        now = self._clock()
        while self._fetch_times and now - self._fetch_times[0] >= 60.0:
            self._fetch_times.popleft()
        if len(self._fetch_times) >= self.requests_per_minute:
            return False
        self._fetch_times.append(now)
        return True

    async def check_provider(self) -> Dict[str, Any]:
        """Report whether the key set is reachable and which key ids it holds."""
        try:
            keys = await self._fetch_jwks()
        except (httpx.HTTPError, ValueError) as exc:
            self.logger.error("JWKS check failed", jwks_url=self.jwks_url, error=str(exc))
            return {"jwks_reachable": False, "error": str(exc)}
        return {"jwks_reachable": True, "kids": [key.get("kid") for key in keys]}

    async def _fetch_jwks(self) -> List[Dict[str, Any]]:
        response = await self._client.get(self.jwks_url)
        response.raise_for_status()
        keys = response.json().get("keys")
        if not isinstance(keys, list):
            raise ValueError("JWKS response missing 'keys' array")
        return [key for key in keys if isinstance(key, dict)]

    def _error(self, failure: VerificationFailure, **details: Any) -> TokenVerificationError:
        self.logger.warning("JWT verification failed", failure=failure.value, **details)
        return TokenVerificationError(
            failure,
            details={"reason": failure.value},
            debug=self.debug_context,
        )

    @staticmethod
    def _classify_claims_error(exc: JWTClaimsError) -> VerificationFailure:
        message = str(exc).lower()
        if "audience" in message:
            return VerificationFailure.AUDIENCE_MISMATCH
        if "issuer" in message:
            return VerificationFailure.ISSUER_MISMATCH
        return VerificationFailure.INVALID_TOKEN

    @staticmethod
    def _extract_roles(claims: Dict[str, Any]) -> set:
        """Extract roles from Keycloak's realm and client role claims."""
        roles = set()

        realm_access = claims.get("realm_access", {})
        if isinstance(realm_access, dict):
            realm_roles = realm_access.get("roles")
            if isinstance(realm_roles, list):
                roles.update(role for role in realm_roles if isinstance(role, str))

        resource_access = claims.get("resource_access", {})
        if isinstance(resource_access, dict):
            for resource in resource_access.values():
                if isinstance(resource, dict):
                    resource_roles = resource.get("roles")
                    if isinstance(resource_roles, list):
                        roles.update(role for role in resource_roles if isinstance(role, str))

        return roles
