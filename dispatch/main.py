"""
Dispatch - FastAPI Backend Application
"""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
import structlog

from dispatch import __version__
from dispatch.config import settings
from dispatch.database import engine
from dispatch.exceptions import DispatchError
from dispatch.api import auth, orders, tracking, agents
from dispatch.services.notifier import notifier

# Configure structured logging
logging.basicConfig(format="%(message)s", level=getattr(logging, settings.log_level.upper(), logging.INFO))

structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
        if settings.log_format == "json"
        else structlog.dev.ConsoleRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    logger.info("Starting Dispatch API", version=__version__)
    yield
    await notifier.close()
    await engine.dispose()
    logger.info("Shutting down Dispatch API")


# Create FastAPI application
app = FastAPI(
    title="Dispatch",
    description="Order lifecycle and delivery tracking for food delivery",
    version=__version__,
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(DispatchError)
async def dispatch_error_handler(request: Request, exc: DispatchError):
    """Map domain errors to JSON responses"""
    if exc.status_code >= 500:
        logger.error("Unhandled dispatch error", path=request.url.path, error=exc.message)
    else:
        logger.info(
            "Request rejected",
            path=request.url.path,
            error=exc.error_code,
            detail=exc.message,
        )
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error": exc.error_code},
    )


# Health check endpoints
@app.get("/health")
async def health():
    """Basic health check"""
    return {"status": "healthy", "service": "api", "version": __version__}


@app.get("/health/ready")
async def ready():
    """Readiness check with dependency verification"""
    from dispatch.database import SessionLocal
    from redis.exceptions import RedisError
    from sqlalchemy.exc import SQLAlchemyError
    
    checks = {}
    
    # Check database
    try:
        async with SessionLocal() as db:
            await db.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except (SQLAlchemyError, OSError) as e:
        checks["database"] = f"failed: {str(e)}"
    
    # Check Redis
    try:
        await notifier.ping()
        checks["redis"] = "ok"
    except (RedisError, OSError) as e:
        checks["redis"] = f"failed: {str(e)}"
    
    all_ok = all(v == "ok" for v in checks.values())
    
    return {
        "status": "ready" if all_ok else "not_ready",
        "checks": checks,
    }


# Include API routers
app.include_router(auth.router, prefix="/auth", tags=["Authentication"])
app.include_router(orders.router, prefix="/orders", tags=["Orders"])
app.include_router(tracking.router, prefix="/tracking", tags=["Tracking"])
app.include_router(agents.router, prefix="/agents", tags=["Delivery Agents"])


if __name__ == "__main__":
    import uvicorn
    
    uvicorn.run(
        "dispatch.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_debug,
    )
