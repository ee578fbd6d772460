"""
API Gateway Service package for the products platform.

The gateway fronts client requests, enforcing:
- Authentication: bearer tokens verified locally against Keycloak's JWKS
- Routing: path-prefix rules onto the auth, products, suppliers and users services
- Health: concurrent aggregation of downstream `/health` checks

Structure:
- app.main: FastAPI app, routes, and middleware wiring.
- app.adapters: HTTP reverse proxy for internal services.
- app.auth: JWKS-backed token verification.
"""
