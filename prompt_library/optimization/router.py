"""Optimization API endpoints."""
import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from prompt_library.auth.dependencies import get_current_active_user
from prompt_library.core.database import get_db
from prompt_library.models.user import User
from prompt_library.optimization.orchestrator import OptimizationOrchestrator
from prompt_library.optimization.providers import LLMProvider, build_providers
from prompt_library.optimization.schemas import (
    AttemptResponse,
    ComparisonResponse,
    OptimizationRequest,
    SingleOptimizationRequest,
    SingleOptimizationResponse,
)
from prompt_library.prompts.store import PromptStore
from prompt_library.usage.schemas import Provider
from prompt_library.usage.store import UsageLogStore, usage_store


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/optimizations", tags=["Optimization"])


def get_providers() -> dict[Provider, LLMProvider]:
    """Vendor clients for the current request."""
    return build_providers()


def get_usage_store() -> UsageLogStore:
    return usage_store


@router.post("/compare", response_model=ComparisonResponse)
async def compare_both(
    payload: OptimizationRequest,
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
    providers: dict[Provider, LLMProvider] = Depends(get_providers),
    usage: UsageLogStore = Depends(get_usage_store),
):
    """
    Optimize a prompt with both vendors in parallel.

    Returns both outcomes; one side failing still returns 200 with its error
    in ``errors``. When both fail the request fails with 502.
    """
    prompt_store = PromptStore(db)
    await prompt_store.get_owned_prompt(payload.prompt_id, current_user.id)

    orchestrator = OptimizationOrchestrator(prompt_store, usage, providers)
    comparison = await orchestrator.compare_both(
        prompt_id=payload.prompt_id,
        prompt_text=payload.prompt_text,
        caller_id=current_user.id,
    )

    if not comparison.any_succeeded:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={"message": "Both optimizations failed", "errors": comparison.errors},
        )

    return ComparisonResponse(
        version=comparison.version,
        result_a=AttemptResponse.model_validate(comparison.result_a),
        result_b=AttemptResponse.model_validate(comparison.result_b),
        errors=comparison.errors,
        total_time_ms=comparison.total_time_ms,
    )


@router.post("/single", response_model=SingleOptimizationResponse)
async def optimize_single(
    payload: SingleOptimizationRequest,
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
    providers: dict[Provider, LLMProvider] = Depends(get_providers),
    usage: UsageLogStore = Depends(get_usage_store),
):
    """Optimize a prompt with one vendor."""
    prompt_store = PromptStore(db)
    await prompt_store.get_owned_prompt(payload.prompt_id, current_user.id)

    orchestrator = OptimizationOrchestrator(prompt_store, usage, providers)
    single = await orchestrator.optimize_single(
        prompt_id=payload.prompt_id,
        prompt_text=payload.prompt_text,
        caller_id=current_user.id,
        provider=payload.provider,
    )

    if not single.result.succeeded:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={"message": "Optimization failed", "error": single.result.error_message},
        )

    return SingleOptimizationResponse(
        version=single.version,
        result=AttemptResponse.model_validate(single.result),
        total_time_ms=single.total_time_ms,
    )
