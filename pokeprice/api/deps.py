"""
API dependencies.
"""
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from pokeprice.services.pricing.engine import PriceAggregationEngine


def get_engine(request: Request) -> PriceAggregationEngine:
    """
    The process-wide pricing engine created at startup.

    Raises HTTPException 503 if the application has not finished starting.
    """
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Pricing engine not initialized",
        )
    return engine


Engine = Annotated[PriceAggregationEngine, Depends(get_engine)]
