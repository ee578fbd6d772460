"""
Products Service package for the products platform.

CRUD over the `products` table:

- app.main: Application entrypoint that wires routes and lifecycle.
- app.controllers: `/api/v1/products` routes.
- app.services: Identifier checks and result messages.
- app.repositories: Parameterized SQL.
- app.database: The asyncpg pool, created at startup and closed on shutdown.
"""
