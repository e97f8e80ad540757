"""Orchestrator tests against in-memory fakes of the prompt and usage stores."""
import asyncio
from decimal import Decimal
from types import SimpleNamespace

import pytest

from prompt_library.optimization.orchestrator import OptimizationOrchestrator
from prompt_library.optimization.providers import ProviderError
from prompt_library.usage.schemas import Provider

from conftest import FakeProvider, make_providers


class FakePromptStore:
    def __init__(self, optimization_count=0, fail_history_for=()):
        self.prompt = SimpleNamespace(id=1, optimization_count=optimization_count)
        self.history = []
        self.counter_calls = []
        self.fail_history_for = set(fail_history_for)

    async def get_prompt(self, prompt_id):
        return self.prompt if prompt_id == self.prompt.id else None

    async def insert_optimization_version(self, **row):
        if row["provider"] in self.fail_history_for:
            raise RuntimeError("disk full")
        self.history.append(row)
        return row

    async def increment_optimization_counter(self, prompt_id, version):
        self.counter_calls.append((prompt_id, version))
        self.prompt.optimization_count = version


class FakeUsageStore:
    def __init__(self):
        self.rows = []

    async def insert(self, data):
        self.rows.append(data)
        return True


def orchestrator(prompt_store, providers, usage_store=None):
    return OptimizationOrchestrator(prompt_store, usage_store or FakeUsageStore(), providers)


@pytest.mark.asyncio
async def test_both_legs_succeed_share_one_version():
    store = FakePromptStore(optimization_count=2)
    usage = FakeUsageStore()

    result = await orchestrator(store, make_providers(), usage).compare_both(1, "Write a poem", caller_id=5)

    assert result.version == 3
    assert result.result_a.succeeded and result.result_b.succeeded
    assert result.result_a.provider is Provider.ANTHROPIC
    assert result.result_b.provider is Provider.OPENAI
    assert result.errors == {"a": None, "b": None}
    assert {row["version"] for row in store.history} == {3}
    assert {row["provider"] for row in store.history} == {"anthropic", "openai"}
    assert store.counter_calls == [(1, 3)]
    assert len(usage.rows) == 2
    assert all(row.success and row.user_id == 5 and row.prompt_id == 1 for row in usage.rows)


@pytest.mark.asyncio
async def test_leg_costs_use_price_table():
    store = FakePromptStore()

    result = await orchestrator(store, make_providers()).compare_both(1, "Prompt", caller_id=1)

    # 1000 input / 500 output tokens from the fake vendors
    assert result.result_b.cost_usd == Decimal("0.0075")
    assert result.result_a.cost_usd == Decimal("0.0105")
    assert store.history[0]["cost_usd"] in (Decimal("0.0105"), Decimal("0.0075"))


@pytest.mark.asyncio
async def test_one_leg_fails_other_still_persisted():
    store = FakePromptStore()
    usage = FakeUsageStore()
    providers = make_providers(anthropic_error=ProviderError("rate limited"))

    result = await orchestrator(store, providers, usage).compare_both(1, "Prompt", caller_id=9)

    assert result.version == 1
    assert not result.result_a.succeeded
    assert result.result_a.output_text is None
    assert result.result_a.cost_usd == Decimal("0")
    assert "rate limited" in result.errors["a"]
    assert result.errors["a"].startswith("Failed to optimize with anthropic")
    assert result.result_b.succeeded
    assert result.result_b.output_text == "Optimized by GPT"
    assert [row["provider"] for row in store.history] == ["openai"]
    assert store.counter_calls == [(1, 1)]

    failed = [row for row in usage.rows if not row.success]
    assert len(usage.rows) == 2 and len(failed) == 1
    assert failed[0].total_tokens == 0
    assert failed[0].cost_usd == Decimal("0")
    assert failed[0].error_message == "rate limited"


@pytest.mark.asyncio
async def test_both_legs_fail_persists_nothing():
    store = FakePromptStore(optimization_count=4)
    usage = FakeUsageStore()
    providers = make_providers(
        anthropic_error=ProviderError("overloaded"),
        openai_error=TimeoutError(),
    )

    result = await orchestrator(store, providers, usage).compare_both(1, "Prompt", caller_id=1)

    assert not result.any_succeeded
    assert result.version == 5
    assert result.errors["a"] and result.errors["b"]
    assert "TimeoutError" in result.errors["b"]
    assert store.history == []
    assert store.counter_calls == []
    assert store.prompt.optimization_count == 4
    assert [row.success for row in usage.rows] == [False, False]


@pytest.mark.asyncio
async def test_history_failure_is_flagged_not_raised():
    store = FakePromptStore(fail_history_for={"anthropic"})

    result = await orchestrator(store, make_providers()).compare_both(1, "Prompt", caller_id=1)

    assert result.result_a.succeeded and not result.result_a.history_persisted
    assert result.result_b.succeeded and result.result_b.history_persisted
    assert store.counter_calls == [(1, 1)]


@pytest.mark.asyncio
async def test_legs_run_concurrently():
    started = []
    release = asyncio.Event()

    class BlockingProvider(FakeProvider):
        async def complete(self, instruction, model=None, max_output_tokens=4096):
            started.append(self.provider)
            if len(started) == 2:
                release.set()
            await asyncio.wait_for(release.wait(), timeout=1)
            return await super().complete(instruction, model, max_output_tokens)

    providers = {
        Provider.ANTHROPIC: BlockingProvider(Provider.ANTHROPIC, "claude-sonnet-4-5-20250929"),
        Provider.OPENAI: BlockingProvider(Provider.OPENAI, "gpt-4o"),
    }

    result = await orchestrator(FakePromptStore(), providers).compare_both(1, "Prompt", caller_id=1)

    assert result.any_succeeded
    assert set(started) == {Provider.ANTHROPIC, Provider.OPENAI}


@pytest.mark.asyncio
async def test_usage_store_errors_do_not_fail_leg():
    class BrokenUsageStore:
        async def insert(self, data):
            raise RuntimeError("db down")

    result = await orchestrator(FakePromptStore(), make_providers(), BrokenUsageStore()).compare_both(
        1, "Prompt", caller_id=1
    )

    assert result.result_a.succeeded and result.result_b.succeeded


@pytest.mark.asyncio
@pytest.mark.parametrize("text", ["", "   \n"])
async def test_blank_prompt_rejected_before_vendor_calls(text):
    providers = make_providers()

    with pytest.raises(ValueError):
        await orchestrator(FakePromptStore(), providers).compare_both(1, text, caller_id=1)

    assert providers[Provider.ANTHROPIC].calls == []
    assert providers[Provider.OPENAI].calls == []


@pytest.mark.asyncio
async def test_prompt_text_is_rendered_into_template():
    providers = make_providers()

    await orchestrator(FakePromptStore(), providers).compare_both(1, "Summarize the article", caller_id=1)

    instruction = providers[Provider.OPENAI].calls[0]
    assert "Summarize the article" in instruction.user
    assert instruction.template_name == "optimize-prompt"


@pytest.mark.asyncio
async def test_optimize_single_success_and_failure():
    store = FakePromptStore()
    usage = FakeUsageStore()
    providers = make_providers(openai_error=ProviderError("bad key"))
    runner = orchestrator(store, providers, usage)

    first = await runner.optimize_single(1, "Prompt", caller_id=1, provider=Provider.ANTHROPIC)
    assert first.version == 1 and first.result.succeeded and first.result.history_persisted
    assert first.total_time_ms >= 0

    second = await runner.optimize_single(1, "Prompt", caller_id=1, provider=Provider.OPENAI)
    assert second.version == 2 and not second.result.succeeded
    assert len(store.history) == 1
    assert len(usage.rows) == 2


@pytest.mark.asyncio
async def test_missing_prompt_raises_lookup_error():
    with pytest.raises(LookupError):
        await orchestrator(FakePromptStore(), make_providers()).compare_both(99, "Prompt", caller_id=1)


class BrokenPriceTable:
    def get(self, model):
        raise RuntimeError("pricing unavailable")


@pytest.mark.asyncio
async def test_leg_raising_after_vendor_call_still_logs_usage():
    store = FakePromptStore()
    usage = FakeUsageStore()
    runner = OptimizationOrchestrator(store, usage, make_providers(), price_table=BrokenPriceTable())

    result = await runner.compare_both(1, "Prompt", caller_id=3)

    assert not result.any_succeeded
    assert "pricing unavailable" in result.errors["a"]
    assert store.history == []
    assert len(usage.rows) == 2
    assert all(not row.success and row.user_id == 3 for row in usage.rows)
    assert {row.error_message for row in usage.rows} == {"pricing unavailable"}


@pytest.mark.asyncio
async def test_single_leg_raising_after_vendor_call_still_logs_usage():
    usage = FakeUsageStore()
    runner = OptimizationOrchestrator(
        FakePromptStore(), usage, make_providers(), price_table=BrokenPriceTable()
    )

    single = await runner.optimize_single(1, "Prompt", caller_id=1, provider=Provider.OPENAI)

    assert not single.result.succeeded
    assert [row.success for row in usage.rows] == [False]
