"""Pricing API router."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from app.modules.pricing.schemas import QuoteRead, QuoteRequest
from app.modules.pricing.service import PricingService, get_pricing_service

router = APIRouter(prefix="/pricing", tags=["pricing"])


@router.post("/quote", response_model=QuoteRead)
async def compute_quote(
    payload: QuoteRequest,
    service: PricingService = Depends(get_pricing_service),
) -> QuoteRead:
    """Compute price breakdown for services, vehicle size and distance."""
    quote = await service.quote(payload)
    return QuoteRead.model_validate(quote)
