"""
Access Service package for the Warehouse Access Layer.

The service sits in front of the warehouse dashboard and answers two
questions for every request or navigation: is this caller within its
request budget, and is this role allowed to do what it is asking for.

Structure:
- app.main: FastAPI app, routes, and middleware wiring.
- app.ratelimit: Named policies, quota stores, the limiter and its middleware.
- app.rbac: Role/permission catalog and the authorization service.
- app.guard: Route guard deciding redirect/deny/render for a path.
- app.adapters: HTTP client for the backend-as-a-service auth provider.
"""
