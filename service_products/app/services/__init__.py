"""
Domain services for the Products service.
"""

from .product_service import ProductService, ServiceResult

__all__ = ["ProductService", "ServiceResult"]
