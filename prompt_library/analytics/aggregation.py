"""Bucketing and reduction of usage-log rows for analytics views.

All functions here are pure: they take rows already loaded from the usage
store and return new values. Weeks start on Monday (ISO weeks) everywhere.
Failed calls are counted like any other request; they contribute zero cost
and zero tokens and are also reported in ``failed_requests``.
"""
from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Iterable, Optional, Protocol


class Granularity(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"


# Most recent buckets kept by the reporting endpoints
BUCKET_LIMITS = {
    Granularity.DAY: 30,
    Granularity.WEEK: 12,
    Granularity.MONTH: 12,
}


def _decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value or 0))


class UsageRow(Protocol):
    """Fields of a usage log the aggregator reads."""

    user_id: int
    provider: str
    total_tokens: int
    cost_usd: Decimal
    latency_ms: int
    success: bool
    created_at: datetime


@dataclass(frozen=True)
class AggregatedBucket:
    bucket_key: str
    total_requests: int
    failed_requests: int
    total_cost_usd: Decimal
    total_tokens: int
    unique_users: int
    avg_latency_ms: float


@dataclass
class _Accumulator:
    requests: int = 0
    failed: int = 0
    cost: Decimal = Decimal("0")
    tokens: int = 0
    latency: int = 0
    users: set = field(default_factory=set)

    def add(self, row: UsageRow) -> None:
        self.requests += 1
        if not row.success:
            self.failed += 1
        self.cost += _decimal(row.cost_usd)
        self.tokens += row.total_tokens or 0
        self.latency += row.latency_ms or 0
        self.users.add(row.user_id)

    def to_bucket(self, key: str) -> AggregatedBucket:
        return AggregatedBucket(
            bucket_key=key,
            total_requests=self.requests,
            failed_requests=self.failed,
            total_cost_usd=self.cost,
            total_tokens=self.tokens,
            unique_users=len(self.users),
            avg_latency_ms=self.latency / self.requests if self.requests else 0.0,
        )


def week_start(day: date) -> date:
    """Monday on or before ``day``."""
    return day - timedelta(days=day.weekday())


def bucket_key(timestamp: datetime, granularity: Granularity | str) -> str:
    """Bucket key for a timestamp: ``YYYY-MM-DD`` for day/week, ``YYYY-MM`` for month."""
    granularity = Granularity(granularity)
    day = timestamp.date()
    if granularity is Granularity.DAY:
        return day.isoformat()
    if granularity is Granularity.WEEK:
        return week_start(day).isoformat()
    return f"{day.year:04d}-{day.month:02d}"


def aggregate(
    records: Iterable[UsageRow],
    granularity: Granularity | str,
    *,
    descending: bool,
) -> list[AggregatedBucket]:
    """Group usage rows into time buckets.

    Args:
        records: Usage rows to reduce
        granularity: day, week or month
        descending: True for most recent bucket first

    Returns:
        One AggregatedBucket per non-empty bucket, sorted by key
    """
    granularity = Granularity(granularity)
    groups: dict[str, _Accumulator] = {}
    for row in records:
        key = bucket_key(row.created_at, granularity)
        groups.setdefault(key, _Accumulator()).add(row)

    return [
        groups[key].to_bucket(key)
        for key in sorted(groups, reverse=descending)
    ]


@dataclass(frozen=True)
class ProviderBucket:
    """Per-bucket split of spending and usage by provider."""

    bucket_key: str
    total_cost_usd: Decimal
    total_tokens: int
    total_requests: int
    cost_by_provider: dict[str, Decimal]
    tokens_by_provider: dict[str, int]
    requests_by_provider: dict[str, int]


def aggregate_by_provider(
    records: Iterable[UsageRow],
    granularity: Granularity | str,
    *,
    descending: bool,
    providers: Iterable[str] = ("anthropic", "openai"),
) -> list[ProviderBucket]:
    granularity = Granularity(granularity)
    provider_names = list(providers)
    groups: dict[str, dict] = {}
    for row in records:
        key = bucket_key(row.created_at, granularity)
        group = groups.setdefault(
            key,
            {
                "cost": {name: Decimal("0") for name in provider_names},
                "tokens": {name: 0 for name in provider_names},
                "requests": {name: 0 for name in provider_names},
            },
        )
        provider = row.provider
        group["cost"][provider] = group["cost"].get(provider, Decimal("0")) + _decimal(row.cost_usd)
        group["tokens"][provider] = group["tokens"].get(provider, 0) + (row.total_tokens or 0)
        group["requests"][provider] = group["requests"].get(provider, 0) + 1

    buckets = []
    for key in sorted(groups, reverse=descending):
        group = groups[key]
        buckets.append(
            ProviderBucket(
                bucket_key=key,
                total_cost_usd=sum(group["cost"].values(), Decimal("0")),
                total_tokens=sum(group["tokens"].values()),
                total_requests=sum(group["requests"].values()),
                cost_by_provider=group["cost"],
                tokens_by_provider=group["tokens"],
                requests_by_provider=group["requests"],
            )
        )
    return buckets


def most_recent(buckets: list, granularity: Granularity | str, *, descending: bool) -> list:
    """Keep the newest N buckets (30 days, 12 weeks or 12 months), preserving order."""
    limit = BUCKET_LIMITS[Granularity(granularity)]
    return buckets[:limit] if descending else buckets[-limit:]


@dataclass(frozen=True)
class UsageSummary:
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


def summarize(records: Iterable[UsageRow]) -> UsageSummary:
    """Overview totals across all given rows."""
    rows = list(records)
    total = len(rows)
    successful = sum(1 for row in rows if row.success)
    total_cost = sum((_decimal(row.cost_usd) for row in rows), Decimal("0"))
    latency = sum(row.latency_ms or 0 for row in rows)
    by_provider = Counter(row.provider for row in rows)

    return UsageSummary(
        total_requests=total,
        successful_requests=successful,
        failed_requests=total - successful,
        total_tokens=sum(row.total_tokens or 0 for row in rows),
        total_cost_usd=total_cost,
        success_rate=successful / total if total else 0.0,
        avg_latency_ms=latency / total if total else 0.0,
        avg_cost_per_success=total_cost / successful if successful else Decimal("0"),
        unique_users=len({row.user_id for row in rows}),
        requests_by_provider=dict(by_provider),
        most_used_provider=by_provider.most_common(1)[0][0] if by_provider else None,
    )


class PromptRow(Protocol):
    """Fields of a prompt the prompt ranking reads."""

    id: int
    title: str
    optimization_count: int
    favorite: bool
    last_optimized_at: Optional[datetime]


@dataclass(frozen=True)
class PromptStats:
    id: int
    title: str
    optimization_count: int
    total_cost_usd: Decimal
    total_tokens: int
    favorite: bool
    last_optimized_at: Optional[datetime]


@dataclass(frozen=True)
class FavoritesStats:
    count: int
    total_optimizations: int
    total_cost_usd: Decimal


@dataclass(frozen=True)
class PromptRanking:
    most_optimized: list[PromptStats]
    most_expensive: list[PromptStats]
    favorites: FavoritesStats
    total_prompts_with_optimizations: int


def rank_prompts(prompts: Iterable[PromptRow], records: Iterable, limit: int = 10) -> PromptRanking:
    """Top prompts by optimization count and by spend.

    Only successful usage rows linked to a prompt count toward spend.
    Ties keep the order of ``prompts``.
    """
    cost: dict[int, Decimal] = {}
    tokens: dict[int, int] = {}
    for row in records:
        if not row.success or row.prompt_id is None:
            continue
        cost[row.prompt_id] = cost.get(row.prompt_id, Decimal("0")) + _decimal(row.cost_usd)
        tokens[row.prompt_id] = tokens.get(row.prompt_id, 0) + (row.total_tokens or 0)

    stats = [
        PromptStats(
            id=prompt.id,
            title=prompt.title,
            optimization_count=prompt.optimization_count or 0,
            total_cost_usd=cost.get(prompt.id, Decimal("0")),
            total_tokens=tokens.get(prompt.id, 0),
            favorite=bool(prompt.favorite),
            last_optimized_at=prompt.last_optimized_at,
        )
        for prompt in prompts
    ]

    optimized = [item for item in stats if item.optimization_count > 0]
    expensive = [item for item in stats if item.total_cost_usd > 0]
    favorites = [item for item in stats if item.favorite]

    return PromptRanking(
        most_optimized=sorted(optimized, key=lambda item: item.optimization_count, reverse=True)[:limit],
        most_expensive=sorted(expensive, key=lambda item: item.total_cost_usd, reverse=True)[:limit],
        favorites=FavoritesStats(
            count=len(favorites),
            total_optimizations=sum(item.optimization_count for item in favorites),
            total_cost_usd=sum((item.total_cost_usd for item in favorites), Decimal("0")),
        ),
        total_prompts_with_optimizations=len(optimized),
    )


@dataclass(frozen=True)
class UserUsage:
    user_id: int
    total_requests: int
    successful_requests: int
    failed_requests: int
    total_cost_usd: Decimal
    total_tokens: int
    avg_latency_ms: float
    success_rate: float
    requests_by_provider: dict[str, int]
    last_activity: datetime


def summarize_by_user(records: Iterable[UsageRow]) -> list[UserUsage]:
    """Per-user totals, highest spend first."""
    groups: dict[int, list[UsageRow]] = {}
    for row in records:
        groups.setdefault(row.user_id, []).append(row)

    users = []
    for user_id, rows in groups.items():
        summary = summarize(rows)
        users.append(
            UserUsage(
                user_id=user_id,
                total_requests=summary.total_requests,
                successful_requests=summary.successful_requests,
                failed_requests=summary.failed_requests,
                total_cost_usd=summary.total_cost_usd,
                total_tokens=summary.total_tokens,
                avg_latency_ms=summary.avg_latency_ms,
                success_rate=summary.success_rate,
                requests_by_provider=summary.requests_by_provider,
                last_activity=max(row.created_at for row in rows),
            )
        )
    users.sort(key=lambda item: item.total_cost_usd, reverse=True)
    return users
