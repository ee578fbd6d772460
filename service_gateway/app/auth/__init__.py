"""
Authentication helpers for the API Gateway service.
"""

from .jwks import (
    AuthContext,
    KeyLookupResult,
    SigningKeyCache,
    TokenVerificationError,
    TokenVerifier,
    VerificationFailure,
)

__all__ = [
    "AuthContext",
    "KeyLookupResult",
    "SigningKeyCache",
    "TokenVerificationError",
    "TokenVerifier",
    "VerificationFailure",
]
