"""
Host Gateway main application.

Wires the liveness monitors into the application lifespan and exposes
health endpoints. The WebSocket transport reports connection events to
`manager` through the LivenessManager callbacks.
"""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from shared.config.settings import settings
from shared.config.logging import setup_logging, host_gateway_logger as logger
from host_gateway import __version__
from host_gateway.liveness_manager import LivenessManager


# Global liveness manager
manager = LivenessManager()


# =============================================================================
# Lifespan
# =============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Starts every liveness monitor on startup and stops them on shutdown.
    """
    setup_logging()
    logger.info(
        "Starting Host Gateway",
        port=settings.host_gateway_port,
        env=settings.environment,
    )

    for error in settings.validate_monitor_timing():
        logger.warning("Monitor timing misconfigured", error=error)

    manager.start_all()

    yield

    logger.info("Shutting down Host Gateway")
    await manager.stop()


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title="Host Gateway",
    description="Liveness and self-healing for host/client connections",
    version=__version__,
    lifespan=lifespan,
)


# =============================================================================
# Health Check
# =============================================================================


@app.get("/ws/health")
def health_check():
    """Basic health check endpoint."""
    try:
        stats = manager.registry.get_stats()
    except Exception as e:
        logger.warning("Failed to get stats in health check", error=str(e))
        stats = {"error": "stats_unavailable"}
    return {
        "status": "healthy",
        "service": "host-gateway",
        "version": app.version,
        "environment": settings.environment,
        **stats,
    }


@app.get("/ws/health/detailed")
def detailed_health_check():
    """Detailed health check with monitor state. 503 while the server is unhealthy."""
    checks = {
        "service": "host-gateway",
        "environment": settings.environment,
        **manager.get_stats(),
    }
    if manager.health_state.is_healthy:
        checks["status"] = "healthy"
        return checks

    checks["status"] = "degraded"
    return JSONResponse(content=checks, status_code=503)


# =============================================================================
# Development entry point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "host_gateway.main:app",
        host="0.0.0.0",
        port=settings.host_gateway_port,
        reload=True,
    )
