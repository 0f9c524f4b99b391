"""
API module for FastAPI routes.
"""
from fastapi import APIRouter

from pokeprice.api.routes import cards, exchange_rate, health, prices, sets

api_router = APIRouter()

# Include all route modules
api_router.include_router(health.router, tags=["Health"])
api_router.include_router(prices.router, tags=["Prices"])
api_router.include_router(cards.router, tags=["Cards"])
api_router.include_router(sets.router, prefix="/sets", tags=["Sets"])
api_router.include_router(exchange_rate.router, tags=["Currency"])
