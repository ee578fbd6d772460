"""
HTTP routes for `/api/v1/products`.
"""

import re
from typing import Optional

from fastapi import APIRouter, Depends, Request

from shared.logging import get_logger
from shared.responses import envelope

from ..models import ProductCreate, ProductUpdate
from ..services.product_service import ProductService, ServiceResult

logger = get_logger("products.controller")

_INTEGER = re.compile(r"-?\d+")

router = APIRouter(prefix="/api/v1/products", tags=["products"])


def get_product_service(request: Request) -> ProductService:
    """Dependency to get the product service instance"""
    return request.app.state.product_service


def parse_id(value: Optional[str]) -> Optional[int]:
    """Parse a decimal integer, None when `value` is absent or not one."""
    if value is None or not _INTEGER.fullmatch(value.strip()):
        return None
    return int(value.strip())


def render(result: ServiceResult, success_status: int = 200, failure_status: int = 400):
    payload = result.payload()
    return envelope(
        success_status if result.success else failure_status,
        success=result.success,
        data=payload["data"],
        error=payload["error"],
        message=payload["message"],
    )


def invalid_id_format():
    return envelope(400, success=False, error="Invalid product ID format")


@router.get("")
async def list_products(
    category: Optional[str] = None,
    supplier: Optional[str] = None,
    service: ProductService = Depends(get_product_service),
):
    """All products, or those of one category (wins) or supplier.

    A filter of 0 counts as absent; negative ids reach the service and are rejected there.
    """
    category_id = parse_id(category)
    supplier_id = parse_id(supplier)

    if category_id:
        result = await service.get_products_by_category(category_id)
    elif supplier_id:
        result = await service.get_products_by_supplier(supplier_id)
    else:
        result = await service.get_all_products()

    return render(result, failure_status=400 if result.invalid_input else 500)


@router.post("")
async def create_product(body: ProductCreate, service: ProductService = Depends(get_product_service)):
    result = await service.create_product(body)
    return render(result, success_status=201)


@router.get("/{product_id}")
async def get_product(product_id: str, service: ProductService = Depends(get_product_service)):
    parsed = parse_id(product_id)
    if parsed is None:
        return invalid_id_format()

    result = await service.get_product_by_id(parsed)
    return render(result, failure_status=404 if result.not_found else 400)


@router.put("/{product_id}")
async def update_product(
    product_id: str,
    body: ProductUpdate,
    service: ProductService = Depends(get_product_service),
):
    parsed = parse_id(product_id)
    if parsed is None:
        return invalid_id_format()

    result = await service.update_product(parsed, body)
    return render(result, failure_status=404 if result.not_found else 400)


@router.delete("/{product_id}")
async def delete_product(product_id: str, service: ProductService = Depends(get_product_service)):
    parsed = parse_id(product_id)
    if parsed is None:
        return invalid_id_format()

    result = await service.delete_product(parsed)
    if not result.success:
        logger.info("Product delete rejected", product_id=parsed, error=result.error)
    return render(result, failure_status=404 if result.not_found else 400)
