"""
Repositories for the Products service.
"""

from .product_repository import ProductRepository, RepositoryError

__all__ = ["ProductRepository", "RepositoryError"]
