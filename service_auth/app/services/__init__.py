"""
Domain services for the Auth service.
"""

from .authentication import AuthenticationService

__all__ = ["AuthenticationService"]
