"""Admin analytics across all users."""
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from prompt_library.analytics.aggregation import Granularity, summarize, summarize_by_user
from prompt_library.analytics.router import (
    BucketResponse,
    OverviewResponse,
    SortOrder,
    SpendingResponse,
    build_spending,
    build_usage_buckets,
)
from prompt_library.auth.dependencies import get_current_active_user, require_admin
from prompt_library.core.config import settings
from prompt_library.core.database import get_db
from prompt_library.models.usage import UsageLog
from prompt_library.models.user import User
from prompt_library.usage.schemas import UsageLogResponse
from prompt_library.usage.store import select_usage_logs


router = APIRouter(prefix="/admin", tags=["Admin"])


class AdminCheckResponse(BaseModel):
    is_admin: bool
    user_id: int


class AdminOverviewResponse(OverviewResponse):
    cost_this_month: Decimal
    requests_last_30_days: int


class UserUsageResponse(BaseModel):
    user_id: int
    email: Optional[str] = None
    username: Optional[str] = None
    total_requests: int
    successful_requests: int
    failed_requests: int
    total_cost_usd: Decimal
    total_tokens: int
    avg_latency_ms: float
    success_rate: float
    requests_by_provider: dict[str, int]
    last_activity: datetime

    class Config:
        from_attributes = True


class AdminUsersResponse(BaseModel):
    users: list[UserUsageResponse]
    total_users: int


class AdminLogsResponse(BaseModel):
    logs: list[UsageLogResponse]
    total: int
    limit: int
    offset: int


@router.get("/check", response_model=AdminCheckResponse)
async def check_admin(current_user: User = Depends(get_current_active_user)):
    """Whether the caller has admin access."""
    return AdminCheckResponse(is_admin=current_user.is_superuser, user_id=current_user.id)


# ============================================================================
# Analytics
# ============================================================================

@router.get("/analytics/usage", response_model=list[BucketResponse])
async def admin_usage(
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    granularity: Granularity = Query(Granularity.DAY),
    order: SortOrder = Query("asc"),
):
    """Usage of all users bucketed by day, week or month."""
    rows = await select_usage_logs(db)
    return build_usage_buckets(rows, granularity, order)


@router.get("/analytics/overview", response_model=AdminOverviewResponse)
async def admin_overview(
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    rows = await select_usage_logs(db)
    summary = summarize(rows)

    now = datetime.utcnow()
    month_start = datetime(now.year, now.month, 1)
    thirty_days_ago = now - timedelta(days=30)

    return AdminOverviewResponse(
        **OverviewResponse.model_validate(summary).model_dump(),
        cost_this_month=summarize(row for row in rows if row.created_at >= month_start).total_cost_usd,
        requests_last_30_days=sum(1 for row in rows if row.created_at >= thirty_days_ago),
    )


@router.get("/analytics/spending", response_model=SpendingResponse)
async def admin_spending(
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    granularity: Granularity = Query(Granularity.DAY),
    order: SortOrder = Query("asc"),
):
    rows = await select_usage_logs(db)
    return build_spending(rows, granularity, order)


@router.get("/analytics/logs", response_model=AdminLogsResponse)
async def admin_logs(
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    user_id: Optional[int] = Query(None),
    limit: int = Query(100, ge=1, le=settings.analytics_log_limit),
    offset: int = Query(0, ge=0),
):
    """Usage log rows of all users, newest first, paginated."""
    count_query = select(func.count(UsageLog.id))
    query = select(UsageLog)
    if user_id is not None:
        count_query = count_query.where(UsageLog.user_id == user_id)
        query = query.where(UsageLog.user_id == user_id)

    total = (await db.execute(count_query)).scalar() or 0
    result = await db.execute(
        query.order_by(UsageLog.created_at.desc(), UsageLog.id.desc()).offset(offset).limit(limit)
    )

    return AdminLogsResponse(
        logs=[UsageLogResponse.model_validate(row) for row in result.scalars().all()],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/analytics/users", response_model=AdminUsersResponse)
async def admin_users(
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Per-user usage totals, highest spend first."""
    rows = await select_usage_logs(db)
    stats = summarize_by_user(rows)

    result = await db.execute(select(User).where(User.id.in_([item.user_id for item in stats])))
    users = {user.id: user for user in result.scalars().all()}

    entries = []
    for item in stats:
        entry = UserUsageResponse.model_validate(item)
        account = users.get(item.user_id)
        if account is not None:
            entry.email = account.email
            entry.username = account.username
        entries.append(entry)

    return AdminUsersResponse(users=entries, total_users=len(entries))
