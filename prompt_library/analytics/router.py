"""Usage analytics for the current user."""
import csv
import io
from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query, Response
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from prompt_library.analytics.aggregation import (
    Granularity,
    aggregate,
    aggregate_by_provider,
    most_recent,
    rank_prompts,
    summarize,
)
from prompt_library.auth.dependencies import get_current_active_user
from prompt_library.core.config import settings
from prompt_library.core.database import get_db
from prompt_library.models.prompt import Prompt
from prompt_library.models.usage import UsageLog
from prompt_library.models.user import User
from prompt_library.usage.pricing import model_display_name
from prompt_library.usage.schemas import UsageLogResponse
from prompt_library.usage.store import select_usage_logs


router = APIRouter(prefix="/analytics", tags=["Analytics"])


# ============================================================================
# Analytics Schemas
# ============================================================================

class BucketResponse(BaseModel):
    bucket_key: str
    total_requests: int
    failed_requests: int
    total_cost_usd: Decimal
    total_tokens: int
    unique_users: int
    avg_latency_ms: float

    class Config:
        from_attributes = True


class ProviderBucketResponse(BaseModel):
    bucket_key: str
    total_cost_usd: Decimal
    total_tokens: int
    total_requests: int
    cost_by_provider: dict[str, Decimal]
    tokens_by_provider: dict[str, int]
    requests_by_provider: dict[str, int]

    class Config:
        from_attributes = True


class SpendingResponse(BaseModel):
    granularity: Granularity
    data: list[ProviderBucketResponse]
    totals: dict[str, Decimal]


class OverviewResponse(BaseModel):
    total_requests: int
    successful_requests: int
    failed_requests: int
    total_tokens: int
    total_cost_usd: Decimal
    success_rate: float
    avg_latency_ms: float
    avg_cost_per_success: Decimal
    unique_users: int
    requests_by_provider: dict[str, int]
    most_used_provider: Optional[str]

    class Config:
        from_attributes = True


class LogsResponse(BaseModel):
    logs: list[UsageLogResponse]
    count: int


class PromptStatsResponse(BaseModel):
    id: int
    title: str
    optimization_count: int
    total_cost_usd: Decimal
    total_tokens: int
    favorite: bool
    last_optimized_at: Optional[datetime]

    class Config:
        from_attributes = True


class FavoritesStatsResponse(BaseModel):
    count: int
    total_optimizations: int
    total_cost_usd: Decimal

    class Config:
        from_attributes = True


class PromptRankingResponse(BaseModel):
    most_optimized: list[PromptStatsResponse]
    most_expensive: list[PromptStatsResponse]
    favorites: FavoritesStatsResponse
    total_prompts_with_optimizations: int

    class Config:
        from_attributes = True


SortOrder = Literal["asc", "desc"]


# ============================================================================
# Shared builders (used by the admin views as well)
# ============================================================================

def build_usage_buckets(rows, granularity: Granularity, order: SortOrder) -> list[BucketResponse]:
    descending = order == "desc"
    buckets = aggregate(rows, granularity, descending=descending)
    return [
        BucketResponse.model_validate(bucket)
        for bucket in most_recent(buckets, granularity, descending=descending)
    ]


def build_spending(rows, granularity: Granularity, order: SortOrder) -> SpendingResponse:
    descending = order == "desc"
    buckets = most_recent(
        aggregate_by_provider(rows, granularity, descending=descending),
        granularity,
        descending=descending,
    )

    totals: dict[str, Decimal] = {}
    for bucket in buckets:
        for provider, cost in bucket.cost_by_provider.items():
            totals[provider] = totals.get(provider, Decimal("0")) + cost
    totals["total"] = sum((bucket.total_cost_usd for bucket in buckets), Decimal("0"))

    return SpendingResponse(
        granularity=granularity,
        data=[ProviderBucketResponse.model_validate(bucket) for bucket in buckets],
        totals=totals,
    )


# ============================================================================
# Endpoints
# ============================================================================

@router.get("/usage", response_model=list[BucketResponse])
async def get_usage(
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
    granularity: Granularity = Query(Granularity.DAY),
    order: SortOrder = Query("asc"),
):
    """Usage of the current user bucketed by day, week or month."""
    rows = await select_usage_logs(db, user_id=current_user.id)
    return build_usage_buckets(rows, granularity, order)


@router.get("/overview", response_model=OverviewResponse)
async def get_overview(
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
):
    """Totals across all of the current user's LLM calls."""
    rows = await select_usage_logs(db, user_id=current_user.id)
    return OverviewResponse.model_validate(summarize(rows))


@router.get("/spending", response_model=SpendingResponse)
async def get_spending(
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
    granularity: Granularity = Query(Granularity.DAY),
    order: SortOrder = Query("asc"),
):
    """Cost over time split by provider."""
    rows = await select_usage_logs(db, user_id=current_user.id)
    return build_spending(rows, granularity, order)


@router.get("/logs", response_model=LogsResponse)
async def get_logs(
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
    limit: int = Query(100, ge=1, le=settings.analytics_log_limit),
):
    """Most recent usage log rows, newest first."""
    rows = await select_usage_logs(db, user_id=current_user.id, newest_first=True, limit=limit)
    return LogsResponse(
        logs=[UsageLogResponse.model_validate(row) for row in rows],
        count=len(rows),
    )


@router.get("/prompts", response_model=PromptRankingResponse)
async def get_prompt_ranking(
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
):
    """Most optimized and most expensive prompts, plus favorites totals."""
    result = await db.execute(
        select(Prompt)
        .where(Prompt.user_id == current_user.id)
        .order_by(Prompt.optimization_count.desc(), Prompt.id)
    )
    prompts = result.scalars().all()
    rows = await select_usage_logs(db, user_id=current_user.id, success=True)
    return PromptRankingResponse.model_validate(rank_prompts(prompts, rows))


# ============================================================================
# Export
# ============================================================================

EXPORT_COLUMNS = [
    "Date",
    "Time",
    "Provider",
    "Model",
    "Model Name",
    "Operation",
    "Prompt Title",
    "Input Tokens",
    "Output Tokens",
    "Total Tokens",
    "Cost (USD)",
    "Latency (ms)",
    "Success",
    "Error",
]

PROVIDER_LABELS = {"anthropic": "Claude", "openai": "ChatGPT"}


def render_usage_csv(rows) -> str:
    """CSV of (usage log, prompt title) pairs; csv handles quoting."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(EXPORT_COLUMNS)
    for log, title in rows:
        writer.writerow([
            log.created_at.strftime("%Y-%m-%d"),
            log.created_at.strftime("%H:%M:%S"),
            PROVIDER_LABELS.get(log.provider, log.provider),
            log.model,
            model_display_name(log.model),
            log.operation_type,
            title or "N/A",
            log.input_tokens or 0,
            log.output_tokens or 0,
            log.total_tokens or 0,
            log.cost_usd or 0,
            log.latency_ms or 0,
            "Yes" if log.success else "No",
            log.error_message or "",
        ])
    return buffer.getvalue()


@router.get("/export")
async def export_usage(
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
):
    """All of the current user's usage logs as a CSV download, newest first."""
    result = await db.execute(
        select(UsageLog, Prompt.title)
        .outerjoin(Prompt, UsageLog.prompt_id == Prompt.id)
        .where(UsageLog.user_id == current_user.id)
        .order_by(UsageLog.created_at.desc(), UsageLog.id.desc())
    )
    filename = f"prompt-library-usage-{datetime.utcnow().date().isoformat()}.csv"
    return Response(
        content=render_usage_csv(result.all()),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
