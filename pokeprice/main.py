"""
Main FastAPI application entry point.
"""
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from pokeprice import __version__
from pokeprice.api import api_router
from pokeprice.core.config import settings
from pokeprice.core.logging import bind_request_context, clear_request_context, setup_logging
from pokeprice.services.pricing.engine import PriceAggregationEngine

# Setup logging
setup_logging()
logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Builds the pricing engine on startup and closes its HTTP clients on
    shutdown.
    """
    logger.info(
        "Starting PokePrice API",
        version=__version__,
        debug=settings.api_debug,
    )

    engine = PriceAggregationEngine.create()
    app.state.engine = engine

    if not engine.justtcg.is_configured:
        logger.info("JustTCG fallback disabled for this process")

    yield

    logger.info("Shutting down PokePrice API")
    await engine.close()
    app.state.engine = None


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    description="Pokemon TCG price aggregation across TCGdex, JustTCG, eBay and Pokemon Price Tracker",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unhandled exceptions."""
    logger.error(
        "Unhandled exception",
        path=request.url.path,
        method=request.method,
        error=str(exc),
        error_type=type(exc).__name__,
    )
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )


# Include API routes
app.include_router(api_router, prefix=settings.api_prefix)


# Middleware for request logging
@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all requests."""
    bind_request_context(request.method, request.url.path)
    logger.debug("Request")
    try:
        response = await call_next(request)
        logger.debug("Response", status=response.status_code)
        return response
    finally:
        clear_request_context()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "pokeprice.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_debug,
    )
