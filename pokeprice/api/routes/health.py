"""
Health check endpoints.
"""
from datetime import datetime, timezone

from fastapi import APIRouter

from pokeprice import __version__
from pokeprice.api.deps import Engine
from pokeprice.core.config import settings

router = APIRouter()


@router.get("/health")
async def health_check(engine: Engine):
    """
    Health check endpoint.

    Reports which pricing providers have credentials configured.
    """
    providers = {
        adapter.provider_slug: "ok" if adapter.is_configured else "not_configured"
        for adapter in (engine.tcgdex, engine.justtcg, engine.ebay, engine.price_tracker)
    }
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "services": {
            "api": "ok",
            **providers,
        },
        "cachedSearches": len(engine.cache),
    }


@router.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": settings.app_name,
        "version": __version__,
        "docs": "/docs",
    }
