"""
Costing API main application.
Entry point for the FastAPI REST server.
"""

from fastapi import FastAPI
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

from costing_api import __version__
from costing_api.core import configure_cors, lifespan, register_middlewares
from costing_api.routers import auth_router, costing_router
from shared.config.settings import settings
from shared.infrastructure.db import SessionLocal
from shared.security.rate_limit import limiter, rate_limit_exceeded_handler
from shared.utils.health import HealthStatus, aggregate_health, check_database


app = FastAPI(
    title="Formulation Costing API",
    description="Multi-tenant raw material and formulation cost engine",
    version=__version__,
    lifespan=lifespan,
)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

register_middlewares(app)
configure_cors(app)


# =============================================================================
# Health Check
# =============================================================================


@app.get("/api/health")
def health_check():
    """Basic health check endpoint."""
    return {
        "status": "healthy",
        "service": "costing-api",
        "version": __version__,
        "environment": settings.environment,
    }


@app.get("/api/health/detailed")
def detailed_health_check():
    """
    Detailed health check that verifies database connectivity.
    Returns 503 when a dependency is down.
    """
    results = [check_database(SessionLocal)]
    overall = aggregate_health(results)
    checks = {
        "service": "costing-api",
        "environment": settings.environment,
        "status": overall.value,
        "dependencies": {r.component: r.to_dict() for r in results},
    }
    if overall is not HealthStatus.HEALTHY:
        return JSONResponse(content=checks, status_code=503)
    return checks


# =============================================================================
# Include Routers
# =============================================================================

app.include_router(auth_router)
app.include_router(costing_router)


# =============================================================================
# Development entry point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "costing_api.main:app",
        host="0.0.0.0",
        port=settings.api_port,
        reload=True,
    )
