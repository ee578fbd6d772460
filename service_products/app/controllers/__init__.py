"""
HTTP controllers for the Products service.
"""

from .product_controller import router

__all__ = ["router"]
