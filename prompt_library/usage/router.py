"""Model pricing API endpoints."""
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel

from prompt_library.usage.pricing import (
    cost_per_1k_tokens,
    estimate_cost,
    format_cost,
    get_price_table,
    model_display_name,
    provider_for_model,
)


router = APIRouter(prefix="/pricing", tags=["Pricing"])


class ModelPricingResponse(BaseModel):
    model: str
    provider: str
    display_name: str
    input_per_1k: str
    output_per_1k: str


class CostEstimateResponse(BaseModel):
    model: str
    input_tokens: int
    output_tokens: int
    estimated_cost_usd: Decimal
    formatted: str


@router.get("", response_model=list[ModelPricingResponse])
async def list_pricing(provider: Optional[str] = Query(None)):
    """Priced models with per-1k-token rates."""
    models = []
    for model in get_price_table().models():
        model_provider = provider_for_model(model)
        if provider and model_provider != provider:
            continue
        rates = cost_per_1k_tokens(model)
        models.append(
            ModelPricingResponse(
                model=model,
                provider=model_provider,
                display_name=model_display_name(model),
                input_per_1k=rates["input"],
                output_per_1k=rates["output"],
            )
        )
    return models


@router.get("/estimate", response_model=CostEstimateResponse)
async def estimate(
    model: str = Query(...),
    input_tokens: int = Query(..., ge=0),
    output_tokens: Optional[int] = Query(None, ge=0),
):
    """Estimate the cost of a call; output defaults to twice the input."""
    if model not in get_price_table():
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown model: {model}",
        )

    cost = estimate_cost(model, input_tokens, output_tokens)
    return CostEstimateResponse(
        model=model,
        input_tokens=input_tokens,
        output_tokens=output_tokens if output_tokens is not None else input_tokens * 2,
        estimated_cost_usd=cost,
        formatted=format_cost(cost),
    )
