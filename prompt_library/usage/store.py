"""Append-only store for LLM usage logs."""
from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Callable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from prompt_library.core import database
from prompt_library.models.usage import UsageLog
from prompt_library.usage.pricing import PriceTable, calculate_cost
from prompt_library.usage.schemas import OperationType, Provider, UsageLogData

if TYPE_CHECKING:
    from prompt_library.optimization.providers import Completion


logger = logging.getLogger(__name__)


def usage_from_completion(
    user_id: int,
    provider: Provider,
    completion: Completion,
    latency_ms: int,
    prompt_id: Optional[int] = None,
    operation_type: OperationType = OperationType.OPTIMIZE,
    table: Optional[PriceTable] = None,
    cost_usd: Optional[Decimal] = None,
) -> UsageLogData:
    """Build a successful usage row from a normalized vendor completion."""
    if cost_usd is None:
        cost_usd = calculate_cost(completion.model, completion.input_tokens, completion.output_tokens, table=table)
    return UsageLogData(
        user_id=user_id,
        prompt_id=prompt_id,
        provider=provider,
        model=completion.model,
        operation_type=operation_type,
        input_tokens=completion.input_tokens,
        output_tokens=completion.output_tokens,
        total_tokens=completion.input_tokens + completion.output_tokens,
        cost_usd=cost_usd,
        latency_ms=latency_ms,
        success=True,
        api_message_id=completion.message_id,
        stop_reason=completion.stop_reason,
    )


def failed_usage(
    user_id: int,
    provider: Provider,
    model: str,
    error: str,
    latency_ms: int,
    prompt_id: Optional[int] = None,
    operation_type: OperationType = OperationType.OPTIMIZE,
) -> UsageLogData:
    """Build a usage row for a call that raised; tokens and cost are zero."""
    return UsageLogData(
        user_id=user_id,
        prompt_id=prompt_id,
        provider=provider,
        model=model,
        operation_type=operation_type,
        latency_ms=latency_ms,
        success=False,
        error_message=error or "Unknown error",
    )


class UsageLogStore:
    """Writes usage rows in their own session so concurrent callers never share one."""

    def __init__(self, session_factory: Optional[Callable[[], AsyncSession]] = None):
        self._session_factory = session_factory

    def _new_session(self) -> AsyncSession:
        factory = self._session_factory or database.AsyncSessionLocal
        return factory()

    async def insert(self, data: UsageLogData) -> bool:
        """Insert a usage row. Failures are logged, never raised."""
        try:
            async with self._new_session() as db:
                db.add(
                    UsageLog(
                        user_id=data.user_id,
                        prompt_id=data.prompt_id,
                        provider=data.provider.value,
                        model=data.model,
                        operation_type=data.operation_type.value,
                        input_tokens=data.input_tokens,
                        output_tokens=data.output_tokens,
                        total_tokens=data.total_tokens,
                        cost_usd=data.cost_usd,
                        latency_ms=data.latency_ms,
                        success=data.success,
                        error_message=data.error_message,
                        api_message_id=data.api_message_id,
                        stop_reason=data.stop_reason,
                    )
                )
                try:
                    await db.commit()
                except Exception as commit_err:
                    logger.error(f"Failed to commit usage log: {commit_err}")
                    await db.rollback()
                    return False
        except Exception as db_err:
            logger.error(f"Database error while logging usage: {db_err}")
            return False

        logger.debug(
            f"Logged {data.provider.value}/{data.model} call for user {data.user_id} "
            f"(success={data.success}, cost={data.cost_usd})"
        )
        return True

    async def select_all(
        self,
        user_id: Optional[int] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[UsageLog]:
        """All rows in insertion-time order, optionally filtered by owner and window."""
        async with self._new_session() as db:
            return await select_usage_logs(db, user_id=user_id, start=start, end=end)


async def select_usage_logs(
    db: AsyncSession,
    user_id: Optional[int] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    success: Optional[bool] = None,
    operation_type: Optional[OperationType] = None,
    newest_first: bool = False,
    limit: Optional[int] = None,
) -> list[UsageLog]:
    """Load usage rows, optionally scoped to a user and a [start, end) window."""
    query = select(UsageLog)
    if user_id is not None:
        query = query.where(UsageLog.user_id == user_id)
    if start is not None:
        query = query.where(UsageLog.created_at >= start)
    if end is not None:
        query = query.where(UsageLog.created_at < end)
    if success is not None:
        query = query.where(UsageLog.success.is_(success))
    if operation_type is not None:
        query = query.where(UsageLog.operation_type == operation_type.value)

    order = UsageLog.created_at.desc() if newest_first else UsageLog.created_at.asc()
    query = query.order_by(order, UsageLog.id)
    if limit is not None:
        query = query.limit(limit)

    result = await db.execute(query)
    return list(result.scalars().all())


usage_store = UsageLogStore()
