"""
Unit tests for the gateway's JWKS token verifier.
"""

import httpx
import pytest

from service_gateway.app.auth.jwks import (
    FAILURE_MESSAGES,
    SigningKeyCache,
    TokenVerificationError,
    TokenVerifier,
    VerificationFailure,
)
from shared.test_helpers import (
    DEFAULT_AUDIENCE,
    DEFAULT_ISSUER,
    MockTokenGenerator,
    MockUser,
    SigningKeyPair,
    jwks_document,
)

JWKS_URL = f"{DEFAULT_ISSUER}/protocol/openid-connect/certs"


@pytest.fixture(scope="module")
def key_pair():
    """Signing key published in the realm's JWKS."""
    return SigningKeyPair(kid="realm-key-1")


@pytest.fixture(scope="module")
def rogue_key_pair():
    """Key pair that reuses the published kid but was never published."""
    return SigningKeyPair(kid="realm-key-1")


@pytest.fixture
def tokens(key_pair):
    return MockTokenGenerator(key_pair)


class JWKSEndpoint:
    """Counts JWKS fetches and serves a configurable response."""

    def __init__(self, body=None, status_code=200, error=None):
        self.body = body
        self.status_code = status_code
        self.error = error
        self.calls = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return httpx.Response(self.status_code, json=self.body)


def build_verifier(endpoint, **kwargs):
    client = httpx.AsyncClient(transport=httpx.MockTransport(endpoint))
    return TokenVerifier(
        JWKS_URL,
        audience=DEFAULT_AUDIENCE,
        issuer=DEFAULT_ISSUER,
        client=client,
        **kwargs,
    )


class TestTokenVerifier:
    """Test cases for TokenVerifier."""

    @pytest.fixture
    def endpoint(self, key_pair):
        return JWKSEndpoint(body=jwks_document(key_pair))

    @pytest.fixture
    def verifier(self, endpoint):
        return build_verifier(endpoint, debug_context={"realm": "myrealm"})

    @pytest.mark.asyncio
    async def test_authenticate_valid_token(self, verifier, tokens):
        """Test a correctly signed token yields the caller's context."""
        user = MockUser(user_id="user-1", username="jane", roles=["user"])
        token = tokens.generate_access_token(user)

        context = await verifier.authenticate(f"Bearer {token}")

        assert context.subject == "user-1"
        assert context.username == "jane"
        assert context.roles == frozenset({"user", "products:read"})
        assert context.claims["iss"] == DEFAULT_ISSUER
        assert context.token == token

    @pytest.mark.asyncio
    async def test_bearer_scheme_is_case_insensitive(self, verifier, tokens):
        """Test the scheme keyword may use any case."""
        context = await verifier.authenticate(f"bearer {tokens.generate_access_token()}")
        assert context.username == "admin"

    @pytest.mark.asyncio
    async def test_missing_header(self, verifier, endpoint):
        """Test an absent Authorization header."""
        with pytest.raises(TokenVerificationError) as exc_info:
            await verifier.authenticate(None)

        error = exc_info.value
        assert error.failure is VerificationFailure.MISSING_HEADER
        assert error.status_code == 401
        assert error.message == "No authorization header provided"
        assert error.hint == "Include Authorization: Bearer <token> header"
        assert endpoint.calls == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("header", ["Bearer", "Basic dXNlcjpwYXNz", "token-without-scheme"])
    async def test_missing_token(self, verifier, header):
        """Test headers that do not carry a bearer token."""
        with pytest.raises(TokenVerificationError) as exc_info:
            await verifier.authenticate(header)

        assert exc_info.value.failure is VerificationFailure.MISSING_TOKEN
        assert exc_info.value.message == "No token provided"

    @pytest.mark.asyncio
    async def test_malformed_token(self, verifier):
        """Test a token whose header cannot be decoded."""
        with pytest.raises(TokenVerificationError) as exc_info:
            await verifier.authenticate("Bearer not-a-jwt")

        assert exc_info.value.failure is VerificationFailure.MALFORMED_TOKEN

    @pytest.mark.asyncio
    async def test_expired_token(self, verifier, tokens):
        """Test an expired token is rejected as expired."""
        token = tokens.generate_access_token(expires_in=-60)

        with pytest.raises(TokenVerificationError) as exc_info:
            await verifier.verify(token)

        assert exc_info.value.failure is VerificationFailure.TOKEN_EXPIRED
        assert exc_info.value.message == "Token has expired"

    @pytest.mark.asyncio
    async def test_audience_mismatch(self, verifier, tokens):
        """Test a token issued for another client."""
        token = tokens.generate_access_token(aud="some-other-client")

        with pytest.raises(TokenVerificationError) as exc_info:
            await verifier.verify(token)

        assert exc_info.value.failure is VerificationFailure.AUDIENCE_MISMATCH
        assert exc_info.value.hint == "Token was issued for a different client"

    @pytest.mark.asyncio
    async def test_missing_audience(self, verifier, tokens):
        """Test a token without an aud claim is rejected as an audience mismatch."""
        claims = tokens.claims()
        del claims["aud"]
        token = tokens.sign(claims)

        with pytest.raises(TokenVerificationError) as exc_info:
            await verifier.verify(token)

        assert exc_info.value.failure is VerificationFailure.AUDIENCE_MISMATCH
        assert exc_info.value.message == "Token audience mismatch"

    @pytest.mark.asyncio
    async def test_issuer_mismatch(self, verifier, tokens):
        """Test a token minted by another realm."""
        token = tokens.generate_access_token(iss="http://localhost:8080/realms/other")

        with pytest.raises(TokenVerificationError) as exc_info:
            await verifier.verify(token)

        assert exc_info.value.failure is VerificationFailure.ISSUER_MISMATCH
        assert exc_info.value.message == "Token issuer mismatch"

    @pytest.mark.asyncio
    async def test_invalid_signature(self, verifier, rogue_key_pair):
        """Test a token signed with an unpublished key under a published kid."""
        token = MockTokenGenerator(rogue_key_pair).generate_access_token()

        with pytest.raises(TokenVerificationError) as exc_info:
            await verifier.verify(token)

        assert exc_info.value.failure is VerificationFailure.INVALID_SIGNATURE
        assert exc_info.value.message == "Invalid token signature"

    @pytest.mark.asyncio
    async def test_unknown_key_id(self, verifier, tokens):
        """Test a kid missing from the key set."""
        token = tokens.sign(tokens.claims(), kid="rotated-away")

        with pytest.raises(TokenVerificationError) as exc_info:
            await verifier.verify(token)

        assert exc_info.value.failure is VerificationFailure.KEY_NOT_FOUND
        assert exc_info.value.message == "Signing key not found"

    @pytest.mark.asyncio
    async def test_provider_unreachable(self, tokens):
        """Test connection failures map to provider unavailable."""
        endpoint = JWKSEndpoint(error=httpx.ConnectError("Connection refused"))
        verifier = build_verifier(endpoint)

        with pytest.raises(TokenVerificationError) as exc_info:
            await verifier.verify(tokens.generate_access_token())

        assert exc_info.value.failure is VerificationFailure.PROVIDER_UNAVAILABLE
        assert exc_info.value.message == "Keycloak server is not available"
        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_realm_not_found(self, tokens):
        """Test a 404 from the JWKS endpoint names the realm as missing."""
        endpoint = JWKSEndpoint(body={"error": "Realm does not exist"}, status_code=404)
        verifier = build_verifier(endpoint)

        with pytest.raises(TokenVerificationError) as exc_info:
            await verifier.verify(tokens.generate_access_token())

        assert exc_info.value.failure is VerificationFailure.REALM_NOT_FOUND

    @pytest.mark.asyncio
    async def test_signing_keys_are_cached(self, verifier, endpoint, tokens):
        """Test repeated verifications fetch the key set once."""
        await verifier.verify(tokens.generate_access_token())
        await verifier.verify(tokens.generate_access_token())

        assert endpoint.calls == 1

    @pytest.mark.asyncio
    async def test_get_signing_key_result(self, verifier, key_pair):
        """Test the lookup returns a result value instead of raising."""
        found = await verifier.get_signing_key(key_pair.kid)
        missing = await verifier.get_signing_key("unknown")

        assert found.ok
        assert found.key["kid"] == key_pair.kid
        assert not missing.ok
        assert missing.failure is VerificationFailure.KEY_NOT_FOUND

    @pytest.mark.asyncio
    async def test_unknown_kids_share_a_fetch_budget(self, endpoint, key_pair, tokens):
        """Test a burst of unknown kids cannot fetch the key set more than the per-minute budget."""
        clock = TestSigningKeyCache.FakeClock()
        verifier = build_verifier(endpoint, requests_per_minute=10, clock=clock)

        for index in range(25):
            token = tokens.sign(tokens.claims(), kid=f"bogus-{index}")
            with pytest.raises(TokenVerificationError) as exc_info:
                await verifier.verify(token)
            assert exc_info.value.failure is VerificationFailure.KEY_NOT_FOUND

        assert endpoint.calls == 10

        # Known kids are still refused until the window moves on.
        missing = await verifier.get_signing_key(key_pair.kid)
        assert missing.failure is VerificationFailure.KEY_NOT_FOUND
        assert endpoint.calls == 10

        clock.now += 60
        claims = await verifier.verify(tokens.generate_access_token())
        assert claims["sub"]
        assert endpoint.calls == 11

    @pytest.mark.asyncio
    async def test_warmup_fills_cache(self, verifier, endpoint, key_pair):
        """Test warmup loads published keys ahead of the first request."""
        await verifier.warmup()

        assert key_pair.kid in verifier.cache
        assert endpoint.calls == 1

    @pytest.mark.asyncio
    async def test_warmup_failure_is_not_fatal(self):
        """Test warmup tolerates an unreachable provider."""
        verifier = build_verifier(JWKSEndpoint(error=httpx.ConnectError("Connection refused")))

        await verifier.warmup()

        assert len(verifier.cache) == 0

    @pytest.mark.asyncio
    async def test_check_provider(self, verifier, key_pair):
        """Test the diagnostics report the published key ids."""
        result = await verifier.check_provider()
        assert result == {"jwks_reachable": True, "kids": [key_pair.kid]}

    @pytest.mark.asyncio
    async def test_error_carries_debug_context(self, verifier):
        """Test rejections expose the configured diagnostics block."""
        with pytest.raises(TokenVerificationError) as exc_info:
            await verifier.authenticate(None)

        response = exc_info.value.to_response()
        assert response.debug == {"realm": "myrealm"}
        assert response.details == {"reason": "missing_header"}
        assert response.code == "AUTHENTICATION_ERROR"

    def test_every_failure_has_a_message(self):
        """Test each failure kind maps to a message and hint."""
        assert set(FAILURE_MESSAGES) == set(VerificationFailure)


class TestSigningKeyCache:
    """Test cases for SigningKeyCache."""

    class FakeClock:
        def __init__(self):
            self.now = 1000.0

        def __call__(self):
            return self.now

    @pytest.fixture
    def clock(self):
        return self.FakeClock()

    def test_entries_expire(self, clock):
        """Test entries older than max_age are dropped."""
        cache = SigningKeyCache(max_entries=5, max_age=600.0, clock=clock)
        cache.put("a", {"kid": "a"})

        clock.now += 599
        assert cache.get("a") == {"kid": "a"}

        clock.now += 1
        assert cache.get("a") is None
        assert "a" not in cache

    def test_entry_count_is_bounded(self, clock):
        """Test the least recently used entry is evicted past max_entries."""
        cache = SigningKeyCache(max_entries=2, max_age=600.0, clock=clock)
        cache.put("a", {"kid": "a"})
        cache.put("b", {"kid": "b"})
        cache.get("a")
        cache.put("c", {"kid": "c"})

        assert len(cache) == 2
        assert "a" in cache
        assert "b" not in cache
        assert "c" in cache

    def test_clear(self, clock):
        """Test clear empties the cache."""
        cache = SigningKeyCache(clock=clock)
        cache.put("a", {"kid": "a"})
        cache.clear()
        assert len(cache) == 0
