"""
SQL access to the `products` table.
"""

from typing import List, Optional

from shared.errors import ServiceError
from shared.logging import get_logger

from ..database.connection import Database
from ..models import PRODUCT_COLUMNS, WRITABLE_COLUMNS, Product, ProductCreate, ProductUpdate

_SELECT = f"SELECT {', '.join(PRODUCT_COLUMNS)} FROM products"

_INSERT = (
    f"INSERT INTO products ({', '.join(WRITABLE_COLUMNS)}) "
    f"VALUES ({', '.join(f'${i}' for i in range(1, len(WRITABLE_COLUMNS) + 1))}) "
    "RETURNING *"
)

_UPDATE = (
    "UPDATE products SET "
    + ", ".join(f"{column} = COALESCE(${i}, {column})" for i, column in enumerate(WRITABLE_COLUMNS, start=1))
    + f" WHERE product_id = ${len(WRITABLE_COLUMNS) + 1} RETURNING *"
)


class RepositoryError(ServiceError):
    """A query failed; the database detail is logged, never surfaced."""


class ProductRepository:
    """Product queries over an injected `Database`."""

    def __init__(self, database: Database):
        self.database = database
        self.logger = get_logger("products.repository")

    async def get_all(self) -> List[Product]:
        try:
            rows = await self.database.fetch(f"{_SELECT} ORDER BY product_id", operation="get_all")
        except Exception as e:
            self.logger.error("Error fetching all products", error=str(e))
            raise RepositoryError("Failed to fetch products from database") from None
        return [Product.from_record(row) for row in rows]

    async def get_by_id(self, product_id: int) -> Optional[Product]:
        try:
            row = await self.database.fetchrow(f"{_SELECT} WHERE product_id = $1", product_id, operation="get_by_id")
        except Exception as e:
            self.logger.error("Error fetching product by ID", product_id=product_id, error=str(e))
            raise RepositoryError("Failed to fetch product from database") from None
        return Product.from_record(row) if row is not None else None

    async def get_by_category(self, category_id: int) -> List[Product]:
        try:
            rows = await self.database.fetch(
                f"{_SELECT} WHERE category_id = $1 ORDER BY product_name",
                category_id,
                operation="get_by_category",
            )
        except Exception as e:
            self.logger.error("Error fetching products by category", category_id=category_id, error=str(e))
            raise RepositoryError("Failed to fetch products by category from database") from None
        return [Product.from_record(row) for row in rows]

    async def get_by_supplier(self, supplier_id: int) -> List[Product]:
        try:
            rows = await self.database.fetch(
                f"{_SELECT} WHERE supplier_id = $1 ORDER BY product_name",
                supplier_id,
                operation="get_by_supplier",
            )
        except Exception as e:
            self.logger.error("Error fetching products by supplier", supplier_id=supplier_id, error=str(e))
            raise RepositoryError("Failed to fetch products by supplier from database") from None
        return [Product.from_record(row) for row in rows]

    async def create(self, product: ProductCreate) -> Product:
        values = [getattr(product, column) for column in WRITABLE_COLUMNS]
        try:
            row = await self.database.fetchrow(_INSERT, *values, operation="create")
        except Exception as e:
            self.logger.error("Error creating product", error=str(e))
            raise RepositoryError("Failed to create product") from None
        return Product.from_record(row)

    async def update(self, product_id: int, changes: ProductUpdate) -> Optional[Product]:
        """Apply the non-null fields of `changes`; None when no row has `product_id`."""
        values = [getattr(changes, column) for column in WRITABLE_COLUMNS]
        try:
            row = await self.database.fetchrow(_UPDATE, *values, product_id, operation="update")
        except Exception as e:
            self.logger.error("Error updating product", product_id=product_id, error=str(e))
            raise RepositoryError("Failed to update product") from None
        return Product.from_record(row) if row is not None else None

    async def delete(self, product_id: int) -> bool:
        try:
            row = await self.database.fetchrow(
                "DELETE FROM products WHERE product_id = $1 RETURNING product_id",
                product_id,
                operation="delete",
            )
        except Exception as e:
            self.logger.error("Error deleting product", product_id=product_id, error=str(e))
            raise RepositoryError("Failed to delete product") from None
        return row is not None
