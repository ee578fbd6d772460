"""
Products service for the products platform.
"""

from typing import Any, Dict, Optional, Tuple

from shared.base_service import BaseService
from shared.config import ServiceConfig
from shared.responses import utc_timestamp

from .controllers.product_controller import router as product_router
from .database.connection import Database
from .repositories.product_repository import ProductRepository
from .services.product_service import ProductService


class ProductsService(BaseService):
    """Products service implementation."""

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        *,
        database: Optional[Database] = None,
        repository: Optional[ProductRepository] = None,
    ):
        super().__init__("products", 3002, config)

        self.database = database or Database.from_config(self.config, metrics=self.metrics)
        self.repository = repository or ProductRepository(self.database)
        self.product_service = ProductService(self.repository)

        self.app.state.product_service = self.product_service
        self.app.include_router(product_router)

    async def on_startup(self) -> None:
        self.logger.info("Products service starting", port=self.config.port, database=self.config.db_name)
        await self.database.connect()

    async def on_shutdown(self) -> None:
        await self.database.close()

    async def health(self) -> Tuple[int, Dict[str, Any]]:
        return 200, {
            "status": "ok",
            "service": "products",
            "timestamp": utc_timestamp(),
        }


def create_app():
    """Create FastAPI application."""
    service = ProductsService()
    return service.app


if __name__ == "__main__":
    service = ProductsService()
    service.run()
