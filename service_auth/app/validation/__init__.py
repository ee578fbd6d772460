"""
Request validation package.

Pydantic models for the Auth service request bodies. Bodies that fail these
models never reach the identity provider; FastAPI rejects them and the shared
handler renders a 400 "Validation failed" envelope.
"""

from .requests import LoginRequest, RefreshTokenRequest

__all__ = ["LoginRequest", "RefreshTokenRequest"]
