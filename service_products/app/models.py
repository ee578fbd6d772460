"""
Product data models.
"""

from typing import Any, Optional

from pydantic import BaseModel, Field

# Column order shared by INSERT and UPDATE statements.
WRITABLE_COLUMNS = (
    "product_name",
    "supplier_id",
    "category_id",
    "quantity_per_unit",
    "unit_price",
    "units_in_stock",
    "units_on_order",
    "reorder_level",
    "discontinued",
)

PRODUCT_COLUMNS = ("product_id",) + WRITABLE_COLUMNS


class Product(BaseModel):
    """A row of the `products` table."""

    product_id: int
    product_name: str
    supplier_id: Optional[int] = None
    category_id: Optional[int] = None
    quantity_per_unit: Optional[str] = None
    unit_price: Optional[float] = None
    units_in_stock: Optional[int] = None
    units_on_order: Optional[int] = None
    reorder_level: Optional[int] = None
    discontinued: int = 0

    @classmethod
    def from_record(cls, record: Any) -> "Product":
        return cls(**dict(record))


class ProductCreate(BaseModel):
    """Request body for creating a product."""

    product_name: str = Field(..., min_length=1, max_length=40)
    supplier_id: Optional[int] = None
    category_id: Optional[int] = None
    quantity_per_unit: Optional[str] = Field(None, max_length=20)
    unit_price: Optional[float] = Field(None, ge=0)
    units_in_stock: Optional[int] = Field(None, ge=0)
    units_on_order: Optional[int] = Field(None, ge=0)
    reorder_level: Optional[int] = Field(None, ge=0)
    discontinued: int = Field(0, ge=0, le=1)


class ProductUpdate(BaseModel):
    """Request body for a partial update; omitted fields keep their value."""

    product_name: Optional[str] = Field(None, min_length=1, max_length=40)
    supplier_id: Optional[int] = None
    category_id: Optional[int] = None
    quantity_per_unit: Optional[str] = Field(None, max_length=20)
    unit_price: Optional[float] = Field(None, ge=0)
    units_in_stock: Optional[int] = Field(None, ge=0)
    units_on_order: Optional[int] = Field(None, ge=0)
    reorder_level: Optional[int] = Field(None, ge=0)
    discontinued: Optional[int] = Field(None, ge=0, le=1)
