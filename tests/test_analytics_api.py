"""Tests for analytics endpoints."""
import csv
import io

import pytest
from datetime import datetime, timedelta
from decimal import Decimal
from httpx import AsyncClient

from prompt_library.models.user import User


@pytest.mark.asyncio
async def test_usage_buckets_by_day(client: AsyncClient, auth_header: dict, user: User, other_user: User, usage_log_factory):
    await usage_log_factory(user, datetime(2025, 1, 10, 8), cost_usd="0.01", latency_ms=100)
    await usage_log_factory(user, datetime(2025, 1, 10, 12), cost_usd="0.02", latency_ms=200, provider="openai")
    await usage_log_factory(user, datetime(2025, 1, 10, 20), cost_usd="0.005", latency_ms=300)
    # Rows of other users never show up
    await usage_log_factory(other_user, datetime(2025, 1, 10, 9), cost_usd="1.00")

    response = await client.get("/analytics/usage", params={"granularity": "day"}, headers=auth_header)

    assert response.status_code == 200
    data = response.json()
    assert len(data) == 1
    bucket = data[0]
    assert bucket["bucket_key"] == "2025-01-10"
    assert bucket["total_requests"] == 3
    assert Decimal(bucket["total_cost_usd"]) == Decimal("0.035")
    assert bucket["avg_latency_ms"] == 200
    assert bucket["unique_users"] == 1


@pytest.mark.asyncio
async def test_usage_buckets_by_week_descending(client: AsyncClient, auth_header: dict, user: User, usage_log_factory):
    # Sunday and the following Monday fall into different weeks
    await usage_log_factory(user, datetime(2025, 1, 12, 10))
    await usage_log_factory(user, datetime(2025, 1, 13, 10))
    await usage_log_factory(user, datetime(2025, 1, 14, 10), success=False)

    response = await client.get(
        "/analytics/usage",
        params={"granularity": "week", "order": "desc"},
        headers=auth_header,
    )

    assert response.status_code == 200
    data = response.json()
    assert [b["bucket_key"] for b in data] == ["2025-01-13", "2025-01-06"]
    assert data[0]["total_requests"] == 2
    assert data[0]["failed_requests"] == 1


@pytest.mark.asyncio
async def test_usage_rejects_unknown_granularity(client: AsyncClient, auth_header: dict):
    response = await client.get("/analytics/usage", params={"granularity": "year"}, headers=auth_header)
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_usage_empty(client: AsyncClient, auth_header: dict):
    response = await client.get("/analytics/usage", params={"granularity": "month"}, headers=auth_header)
    assert response.status_code == 200
    assert response.json() == []


@pytest.mark.asyncio
async def test_overview(client: AsyncClient, auth_header: dict, user: User, usage_log_factory):
    now = datetime.utcnow()
    await usage_log_factory(user, now, provider="openai", cost_usd="0.01", latency_ms=100)
    await usage_log_factory(user, now, provider="openai", cost_usd="0.03", latency_ms=300)
    await usage_log_factory(user, now, provider="anthropic", success=False, latency_ms=200)

    response = await client.get("/analytics/overview", headers=auth_header)

    assert response.status_code == 200
    data = response.json()
    assert data["total_requests"] == 3
    assert data["successful_requests"] == 2
    assert data["failed_requests"] == 1
    assert Decimal(data["total_cost_usd"]) == Decimal("0.04")
    assert Decimal(data["avg_cost_per_success"]) == Decimal("0.02")
    assert data["avg_latency_ms"] == 200
    assert data["most_used_provider"] == "openai"


@pytest.mark.asyncio
async def test_spending_by_provider(client: AsyncClient, auth_header: dict, user: User, usage_log_factory):
    await usage_log_factory(user, datetime(2025, 2, 3), provider="anthropic", cost_usd="0.01")
    await usage_log_factory(user, datetime(2025, 2, 4), provider="openai", cost_usd="0.02")
    await usage_log_factory(user, datetime(2025, 3, 1), provider="openai", cost_usd="0.04")

    response = await client.get("/analytics/spending", params={"granularity": "month"}, headers=auth_header)

    assert response.status_code == 200
    data = response.json()
    assert data["granularity"] == "month"
    assert [b["bucket_key"] for b in data["data"]] == ["2025-02", "2025-03"]
    assert Decimal(data["data"][0]["cost_by_provider"]["anthropic"]) == Decimal("0.01")
    assert Decimal(data["totals"]["openai"]) == Decimal("0.06")
    assert Decimal(data["totals"]["total"]) == Decimal("0.07")


@pytest.mark.asyncio
async def test_logs_newest_first(client: AsyncClient, auth_header: dict, user: User, usage_log_factory):
    base = datetime(2025, 1, 1)
    for i in range(5):
        await usage_log_factory(user, base + timedelta(hours=i), latency_ms=i)

    response = await client.get("/analytics/logs", params={"limit": 3}, headers=auth_header)

    assert response.status_code == 200
    data = response.json()
    assert data["count"] == 3
    assert [log["latency_ms"] for log in data["logs"]] == [4, 3, 2]


@pytest.mark.asyncio
async def test_logs_limit_is_capped(client: AsyncClient, auth_header: dict):
    response = await client.get("/analytics/logs", params={"limit": 5000}, headers=auth_header)
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_analytics_requires_auth(client: AsyncClient):
    response = await client.get("/analytics/usage")
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_prompt_ranking(
    client: AsyncClient, auth_header: dict, user: User, other_user: User, prompt_factory, usage_log_factory
):
    cheap = await prompt_factory(user, title="Cheap", optimization_count=4, favorite=True)
    pricey = await prompt_factory(user, title="Pricey", optimization_count=1)
    await prompt_factory(user, title="Untouched")
    await prompt_factory(other_user, title="Not mine", optimization_count=9)

    when = datetime(2025, 1, 10)
    await usage_log_factory(user, when, cost_usd="0.01", prompt_id=cheap.id)
    await usage_log_factory(user, when, cost_usd="0.20", prompt_id=pricey.id)
    await usage_log_factory(user, when, success=False, prompt_id=pricey.id)

    response = await client.get("/analytics/prompts", headers=auth_header)

    assert response.status_code == 200
    data = response.json()
    assert [p["title"] for p in data["most_optimized"]] == ["Cheap", "Pricey"]
    assert [p["title"] for p in data["most_expensive"]] == ["Pricey", "Cheap"]
    assert Decimal(data["most_expensive"][0]["total_cost_usd"]) == Decimal("0.20")
    assert data["favorites"]["count"] == 1
    assert data["favorites"]["total_optimizations"] == 4
    assert data["total_prompts_with_optimizations"] == 2


@pytest.mark.asyncio
async def test_export_csv(
    client: AsyncClient, auth_header: dict, user: User, other_user: User, prompt_factory, usage_log_factory
):
    titled = await prompt_factory(user, title='Say "hi", politely')
    await usage_log_factory(
        user, datetime(2025, 1, 10, 8, 30), provider="openai", model="gpt-4o", prompt_id=titled.id
    )
    await usage_log_factory(user, datetime(2025, 1, 11, 9), success=False)
    await usage_log_factory(other_user, datetime(2025, 1, 12))

    response = await client.get("/analytics/export", headers=auth_header)

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert "attachment" in response.headers["content-disposition"]

    rows = list(csv.reader(io.StringIO(response.text)))
    assert len(rows) == 3
    header, newest, oldest = rows
    assert header[0] == "Date"

    record = dict(zip(header, oldest))
    assert record["Date"] == "2025-01-10"
    assert record["Time"] == "08:30:00"
    assert record["Provider"] == "ChatGPT"
    assert record["Model Name"] == "GPT-4o"
    assert record["Prompt Title"] == 'Say "hi", politely'
    assert record["Success"] == "Yes"

    failed = dict(zip(header, newest))
    assert failed["Prompt Title"] == "N/A"
    assert failed["Success"] == "No"
    assert failed["Error"] == "boom"


# ============================================================================
# Admin views
# ============================================================================

@pytest.mark.asyncio
async def test_admin_endpoints_forbidden_for_regular_users(client: AsyncClient, auth_header: dict):
    for path in (
        "/admin/analytics/usage",
        "/admin/analytics/overview",
        "/admin/analytics/logs",
        "/admin/analytics/users",
    ):
        response = await client.get(path, headers=auth_header)
        assert response.status_code == 403
        assert response.json()["detail"] == "Admin access required"


@pytest.mark.asyncio
async def test_admin_usage_spans_all_users(
    client: AsyncClient, admin_header: dict, user: User, other_user: User, usage_log_factory
):
    await usage_log_factory(user, datetime(2025, 1, 10, 8), cost_usd="0.01")
    await usage_log_factory(other_user, datetime(2025, 1, 10, 9), cost_usd="0.02")

    response = await client.get("/admin/analytics/usage", params={"granularity": "day"}, headers=admin_header)

    assert response.status_code == 200
    bucket = response.json()[0]
    assert bucket["total_requests"] == 2
    assert bucket["unique_users"] == 2
    assert Decimal(bucket["total_cost_usd"]) == Decimal("0.03")


@pytest.mark.asyncio
async def test_admin_overview(client: AsyncClient, admin_header: dict, user: User, other_user: User, usage_log_factory):
    now = datetime.utcnow()
    await usage_log_factory(user, now, cost_usd="0.01")
    await usage_log_factory(other_user, now - timedelta(days=400), cost_usd="0.02")

    response = await client.get("/admin/analytics/overview", headers=admin_header)

    assert response.status_code == 200
    data = response.json()
    assert data["total_requests"] == 2
    assert data["unique_users"] == 2
    assert data["requests_last_30_days"] == 1
    assert Decimal(data["cost_this_month"]) == Decimal("0.01")


@pytest.mark.asyncio
async def test_admin_logs_pagination_and_filter(
    client: AsyncClient, admin_header: dict, user: User, other_user: User, usage_log_factory
):
    base = datetime(2025, 1, 1)
    for i in range(3):
        await usage_log_factory(user, base + timedelta(minutes=i))
    await usage_log_factory(other_user, base + timedelta(minutes=10))

    page = await client.get("/admin/analytics/logs", params={"limit": 2, "offset": 1}, headers=admin_header)
    assert page.status_code == 200
    data = page.json()
    assert data["total"] == 4
    assert len(data["logs"]) == 2
    assert data["offset"] == 1

    filtered = await client.get("/admin/analytics/logs", params={"user_id": other_user.id}, headers=admin_header)
    assert [log["user_id"] for log in filtered.json()["logs"]] == [other_user.id]


@pytest.mark.asyncio
async def test_admin_check(client: AsyncClient, auth_header: dict, admin_header: dict):
    regular = await client.get("/admin/check", headers=auth_header)
    admin = await client.get("/admin/check", headers=admin_header)

    assert regular.json()["is_admin"] is False
    assert admin.json()["is_admin"] is True


@pytest.mark.asyncio
async def test_admin_users_ranked_by_spend(
    client: AsyncClient, admin_header: dict, user: User, other_user: User, usage_log_factory
):
    await usage_log_factory(user, datetime(2025, 1, 10), cost_usd="0.01")
    await usage_log_factory(other_user, datetime(2025, 1, 10), cost_usd="0.30", provider="openai")
    await usage_log_factory(other_user, datetime(2025, 1, 12), success=False)

    response = await client.get("/admin/analytics/users", headers=admin_header)

    assert response.status_code == 200
    data = response.json()
    assert data["total_users"] == 2
    top = data["users"][0]
    assert top["user_id"] == other_user.id
    assert top["email"] == other_user.email
    assert top["total_requests"] == 2
    assert top["failed_requests"] == 1
    assert Decimal(top["total_cost_usd"]) == Decimal("0.30")
    assert top["last_activity"].startswith("2025-01-12")
    assert data["users"][1]["user_id"] == user.id
