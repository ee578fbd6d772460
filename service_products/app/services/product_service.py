"""
Product business rules on top of the repository.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel

from shared.logging import get_logger

from ..models import ProductCreate, ProductUpdate
from ..repositories.product_repository import ProductRepository, RepositoryError


class ServiceResult(BaseModel):
    """Outcome of a product operation, rendered by the controller."""

    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None
    message: Optional[str] = None

    @classmethod
    def ok(cls, data: Any = None, message: Optional[str] = None) -> "ServiceResult":
        return cls(success=True, data=data, message=message)

    @classmethod
    def fail(cls, error: str) -> "ServiceResult":
        return cls(success=False, error=error)

    @property
    def not_found(self) -> bool:
        return not self.success and "not found" in (self.error or "")

    @property
    def invalid_input(self) -> bool:
        return not self.success and (self.error or "").startswith("Invalid")

    def payload(self) -> Dict[str, Any]:
        data = self.data
        if isinstance(data, list):
            data = [item.model_dump() if isinstance(item, BaseModel) else item for item in data]
        elif isinstance(data, BaseModel):
            data = data.model_dump()
        return {"data": data, "error": self.error, "message": self.message}


def _not_found(product_id: int) -> ServiceResult:
    return ServiceResult.fail(f"Product with ID {product_id} not found")


class ProductService:
    """Validates identifiers and turns repository outcomes into results."""

    def __init__(self, repository: ProductRepository):
        self.repository = repository
        self.logger = get_logger("products.service")

    async def get_all_products(self) -> ServiceResult:
        try:
            products = await self.repository.get_all()
        except RepositoryError as e:
            return ServiceResult.fail(e.message)
        return ServiceResult.ok(products, f"Retrieved {len(products)} products successfully")

    async def get_product_by_id(self, product_id: int) -> ServiceResult:
        if product_id <= 0:
            return ServiceResult.fail("Invalid product ID provided")

        try:
            product = await self.repository.get_by_id(product_id)
        except RepositoryError as e:
            return ServiceResult.fail(e.message)

        if product is None:
            return _not_found(product_id)
        return ServiceResult.ok(product, "Product retrieved successfully")

    async def get_products_by_category(self, category_id: int) -> ServiceResult:
        if category_id <= 0:
            return ServiceResult.fail("Invalid category ID provided")

        try:
            products = await self.repository.get_by_category(category_id)
        except RepositoryError as e:
            return ServiceResult.fail(e.message)
        return ServiceResult.ok(products, f"Retrieved {len(products)} products for category {category_id}")

    async def get_products_by_supplier(self, supplier_id: int) -> ServiceResult:
        if supplier_id <= 0:
            return ServiceResult.fail("Invalid supplier ID provided")

        try:
            products = await self.repository.get_by_supplier(supplier_id)
        except RepositoryError as e:
            return ServiceResult.fail(e.message)
        return ServiceResult.ok(products, f"Retrieved {len(products)} products for supplier {supplier_id}")

    async def create_product(self, product: ProductCreate) -> ServiceResult:
        try:
            created = await self.repository.create(product)
        except RepositoryError as e:
            return ServiceResult.fail(e.message)

        self.logger.info("Product created", product_id=created.product_id)
        return ServiceResult.ok(created, "Product created successfully")

    async def update_product(self, product_id: int, changes: ProductUpdate) -> ServiceResult:
        if product_id <= 0:
            return ServiceResult.fail("Invalid product ID provided")

        try:
            updated = await self.repository.update(product_id, changes)
        except RepositoryError as e:
            return ServiceResult.fail(e.message)

        if updated is None:
            return _not_found(product_id)
        return ServiceResult.ok(updated, "Product updated successfully")

    async def delete_product(self, product_id: int) -> ServiceResult:
        if product_id <= 0:
            return ServiceResult.fail("Invalid product ID provided")

        try:
            deleted = await self.repository.delete(product_id)
        except RepositoryError as e:
            return ServiceResult.fail(e.message)

        if not deleted:
            return _not_found(product_id)

        self.logger.info("Product deleted", product_id=product_id)
        return ServiceResult.ok(message="Product deleted successfully")
